"""Error taxonomy for the ghost-text client.

Every error here is local and terminal: callers log it, optionally surface a
warning, and return the engine to a well-defined state. Nothing is retried.
"""

from typing import Any, Optional


class GhostTextError(Exception):
    """Base class for ghost-text client errors."""


class NoActiveSession(GhostTextError):
    """No backend session is attached to the document."""

    def __init__(self, document_id: Optional[str] = None):
        self.document_id = document_id
        if document_id:
            message = f"LLM Coder not active for {document_id}"
        else:
            message = "LLM Coder not active for current buffer"
        super().__init__(message)


class NoRepositoryRoot(GhostTextError):
    """No repository root was found above the starting directory."""

    def __init__(self, start: Any = None):
        self.start = start
        super().__init__("Not inside a Git repo")


class EnumerationFailed(GhostTextError):
    """The file listing command failed."""

    def __init__(self, diagnostic: str):
        self.diagnostic = diagnostic
        super().__init__(f"Failed to list files: {diagnostic}")


class StaleResponse(GhostTextError):
    """A completion response no longer matches the editor state."""


class BackendError(GhostTextError):
    """The backend answered a request with an error payload."""

    def __init__(self, payload: Any):
        self.payload = payload
        if isinstance(payload, dict):
            self.code = payload.get("code")
            message = payload.get("message") or repr(payload)
        else:
            self.code = None
            message = str(payload)
        super().__init__(f"GhostText error: {message}")
