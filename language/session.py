"""Backend sessions: one completion server per project root."""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.config import Config
from core.utils import filetype_for, path_to_uri
from indexer.project_files import find_repo_root, list_project_files, read_project_files
from language.lsp_client import GET_PROJECT_FILES_METHOD, LSPClient

logger = logging.getLogger(__name__)


class BackendSession:
    """A running backend serving every attached document under one root."""

    def __init__(self, config: Config, root: Path, client_factory: Callable[..., Any] = LSPClient,
                 warn: Optional[Callable[[str], None]] = None):
        self.config = config
        self.root = root
        self.client = client_factory(config.server_cmd, root)
        self.warn = warn
        self.documents: Dict[str, int] = {}
        self.primed = False
        self.client.on_request(GET_PROJECT_FILES_METHOD, self._handle_get_project_files)

    @property
    def running(self) -> bool:
        return bool(self.client.running)

    def start(self) -> bool:
        """Start the backend process."""
        return self.client.start()

    def stop(self):
        """Close every attached document and stop the backend."""
        for uri in list(self.documents):
            self.client.did_close(uri)
        self.documents.clear()
        self.client.stop()

    def attach(self, uri: str, language_id: str, text: str):
        """Open a document on the backend."""
        if uri in self.documents:
            return
        self.documents[uri] = 1
        self.client.did_open(uri, language_id, text, version=1)

    def sync(self, uri: str, text: str):
        """Send the full text of an attached document."""
        if uri not in self.documents:
            return
        self.documents[uri] += 1
        self.client.did_change(uri, text, self.documents[uri])

    def detach(self, uri: str):
        """Close a document on the backend."""
        if self.documents.pop(uri, None) is not None:
            self.client.did_close(uri)

    def prime_project_context(self) -> int:
        """
        Send every tracked project file to the backend, once per session.

        Returns:
            Number of files submitted.
        """
        if self.primed:
            return 0
        self.primed = True

        repo_root = find_repo_root(self.root)
        if repo_root is None:
            logger.info(f"No repository above {self.root}, skipping project priming")
            return 0

        files = list_project_files(repo_root, warn=self.warn)
        sent = 0
        for project_file in read_project_files(repo_root, files):
            if not self.client.running:
                break
            self.client.submit_project_file(project_file.path, project_file.content, str(repo_root))
            sent += 1

        logger.info(f"Primed backend with {sent} project files from {repo_root}")
        return sent

    def _handle_get_project_files(self, params: Dict[str, Any]) -> Optional[List[Dict[str, str]]]:
        """Answer the server's request for project files."""
        repo_root = find_repo_root(self.root)
        if repo_root is None:
            return None

        files = list_project_files(repo_root, warn=self.warn)
        return [{"path": f.path, "content": f.content} for f in read_project_files(repo_root, files)]


class SessionManager:
    """Attaches documents to backend sessions keyed by project root."""

    def __init__(self, config: Config, warn: Optional[Callable[[str], None]] = None,
                 client_factory: Callable[..., Any] = LSPClient, prime_in_background: bool = True):
        self.config = config
        self.warn = warn
        self.client_factory = client_factory
        self.prime_in_background = prime_in_background
        self.sessions: Dict[Path, BackendSession] = {}
        self.by_document: Dict[str, Tuple[BackendSession, str]] = {}
        self.notification_handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {}

    def on_notification(self, method: str, handler: Callable[[Dict[str, Any]], None]):
        """Register a notification handler on every current and future backend."""
        self.notification_handlers[method] = handler
        for session in self.sessions.values():
            session.client.on_notification(method, handler)

    def root_for(self, path: Optional[str]) -> Path:
        """Repository root of a document, else the working directory."""
        if path:
            root = find_repo_root(Path(path).parent)
            if root is not None:
                return root
        return Path.cwd()

    def attach(self, document_id: str, path: Optional[str], text: str) -> Optional[BackendSession]:
        """
        Attach a document to the backend serving its root.

        Documents whose file type is not configured are left unattached. The
        backend is started on first use and primed with project files.
        """
        filetype = filetype_for(path)
        if filetype not in self.config.server_filetypes:
            logger.debug(f"Not attaching {document_id}: filetype {filetype} not enabled")
            return None

        existing = self.by_document.get(document_id)
        if existing is not None:
            return existing[0]

        root = self.root_for(path)
        session = self.sessions.get(root)
        if session is None:
            session = BackendSession(self.config, root, self.client_factory, warn=self.warn)
            for method, handler in self.notification_handlers.items():
                session.client.on_notification(method, handler)
            if not session.start():
                if self.warn:
                    self.warn(f"Failed to start completion backend: {' '.join(self.config.server_cmd)}")
                return None
            self.sessions[root] = session
            self._prime(session)

        uri = path_to_uri(path) if path else f"untitled:{document_id}"
        session.attach(uri, filetype, text)
        self.by_document[document_id] = (session, uri)
        return session

    def _prime(self, session: BackendSession):
        if self.prime_in_background:
            threading.Thread(target=session.prime_project_context, daemon=True, name="llmcoder-prime").start()
        else:
            session.prime_project_context()

    def session_for(self, document_id: str) -> Optional[BackendSession]:
        """The running session attached to a document, if any."""
        entry = self.by_document.get(document_id)
        if entry is None or not entry[0].running:
            return None
        return entry[0]

    def uri_for(self, document_id: str) -> Optional[str]:
        entry = self.by_document.get(document_id)
        return entry[1] if entry else None

    def document_for_uri(self, uri: str) -> Optional[str]:
        """Reverse lookup from a backend URI to the attached document id."""
        for document_id, (_, attached_uri) in self.by_document.items():
            if attached_uri == uri:
                return document_id
        return None

    def sync(self, document_id: str, text: str):
        entry = self.by_document.get(document_id)
        if entry is not None:
            entry[0].sync(entry[1], text)

    def detach(self, document_id: str):
        entry = self.by_document.pop(document_id, None)
        if entry is not None:
            entry[0].detach(entry[1])

    def shutdown(self):
        """Stop every backend."""
        for session in self.sessions.values():
            session.stop()
        self.sessions.clear()
        self.by_document.clear()
