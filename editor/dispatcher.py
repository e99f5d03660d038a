"""Completion requests to the backend, one live token at a time."""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.errors import NoActiveSession
from language.lsp_client import VIRTUAL_TEXT_METHOD
from language.session import BackendSession, SessionManager

logger = logging.getLogger(__name__)

BACKEND_UNAVAILABLE = {"code": -32603, "message": "backend unavailable"}


@dataclass(frozen=True)
class CompletionResponse:
    """Outcome of one completion request, tagged with its token."""
    token: int
    uri: Optional[str] = None
    line: Optional[int] = None
    text: str = ""
    error: Optional[Any] = None


class RequestDispatcher:
    """Sends completion requests and delivers their outcomes as events.

    Outcomes arrive on the backend reader thread and are handed to ``post``
    (normally ``loop.call_soon_threadsafe``) so ``on_response`` always runs on
    the loop that owns the editor state.
    """

    def __init__(self, sessions: SessionManager, post: Callable[..., Any],
                 on_response: Callable[[CompletionResponse], None]):
        self.sessions = sessions
        self.post = post
        self.on_response = on_response
        self.live_token: Optional[int] = None
        self._tokens = itertools.count(1)
        self._live_session: Optional[BackendSession] = None
        # Last token written to the wire, read from the reader thread.
        self._sent_token: Optional[int] = None
        sessions.on_notification(VIRTUAL_TEXT_METHOD, self._handle_virtual_text)

    def dispatch(self, document_id: str, line: int, column: int) -> int:
        """
        Request a completion at a position.

        The previous live token, if any, is abandoned.

        Raises:
            NoActiveSession: the document has no running backend.

        Returns:
            The new live token.
        """
        session = self.sessions.session_for(document_id)
        uri = self.sessions.uri_for(document_id)
        if session is None or uri is None:
            raise NoActiveSession(document_id)

        token = next(self._tokens)
        self.live_token = token
        self._live_session = session
        self._sent_token = token

        def handle_result(error: Optional[Dict[str, Any]], result: Any) -> None:
            if error is not None:
                self._deliver(CompletionResponse(token=token, error=error))
            elif isinstance(result, dict) and "text" in result:
                self._deliver(self._response_from(token, result))
            # Anything else is an acknowledgement; the text follows as a notification.

        request_id = session.client.trigger_completion(uri, line, column, handle_result)
        if request_id < 0:
            self._deliver(CompletionResponse(token=token, error=BACKEND_UNAVAILABLE))
        logger.debug(f"Dispatched completion token={token} request={request_id} at {line}:{column}")
        return token

    def cancel(self) -> None:
        """Abandon the live token and tell the backend, best effort."""
        if self.live_token is None:
            return
        logger.debug(f"Cancelling completion token={self.live_token}")
        session = self._live_session
        self.live_token = None
        self._live_session = None
        if session is not None and session.running:
            session.client.cancel_completion()

    def complete(self, token: int) -> None:
        """Retire a token whose response has been handled."""
        if token == self.live_token:
            self.live_token = None
            self._live_session = None

    def is_live(self, token: int) -> bool:
        return self.live_token is not None and token == self.live_token

    def _handle_virtual_text(self, params: Any) -> None:
        """Deliver a pushed suggestion.

        The backend sends no token, so the text is credited to the last request
        written when the notification is read. A late answer to an abandoned
        request that lands after a newer dispatch is therefore taken as the
        newer one's answer; the snapshot check still rejects it if the cursor
        or line moved in between.
        """
        if not isinstance(params, dict):
            logger.debug(f"Ignoring malformed ghost text notification: {params!r}")
            return
        token = params.get("token", self._sent_token)
        if token is None:
            logger.debug("Dropping ghost text notification with no request outstanding")
            return
        self._deliver(self._response_from(token, params))

    @staticmethod
    def _response_from(token: int, payload: Dict[str, Any]) -> CompletionResponse:
        return CompletionResponse(
            token=token,
            uri=payload.get("uri"),
            line=payload.get("line", 0),
            text=payload.get("text") or "",
        )

    def _deliver(self, response: CompletionResponse) -> None:
        self.post(self.on_response, response)
