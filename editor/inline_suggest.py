"""Inline AI suggestions (ghost text).

``InlineSuggest`` is the lifecycle state machine. It owns the one pending
suggestion, issues and abandons completion requests, checks every response
against a fresh snapshot of the editor, and splices accepted text into the
buffer. All methods run on the event loop that owns the editor state.
"""

import logging
from enum import Enum
from typing import Callable, Optional, Tuple

from core.config import Config
from core.errors import BackendError, NoActiveSession, StaleResponse
from editor.buffers import BufferManager
from editor.dispatcher import CompletionResponse, RequestDispatcher
from editor.ghost_text import PreviewRenderer
from editor.scheduler import TriggerScheduler
from editor.snapshot import DocumentSnapshot, take_snapshot
from editor.suggestion_store import Suggestion, SuggestionStore

logger = logging.getLogger(__name__)

Notify = Callable[[str, int], None]


class SuggestState(Enum):
    """Lifecycle states."""
    IDLE = "idle"
    REQUESTING = "requesting"
    DISPLAYING = "displaying"


def splice_suggestion(line_text: str, column: int, text: str) -> Tuple[list, int, int]:
    """
    Insert suggestion text into a line at ``column``.

    The part of the line after ``column`` follows the last inserted line.

    Returns:
        (replacement lines, cursor line offset, cursor column) where the
        cursor sits at the end of the inserted text.
    """
    column = min(column, len(line_text))
    prefix, suffix = line_text[:column], line_text[column:]
    lines = text.split("\n")

    replacement = [prefix + lines[0]] + lines[1:]
    replacement[-1] += suffix

    if len(lines) > 1:
        return replacement, len(lines) - 1, len(lines[-1])
    return replacement, 0, column + len(lines[0])


class InlineSuggest:
    """Manages inline AI suggestions."""

    def __init__(self, config: Config, buffers: BufferManager, dispatcher: RequestDispatcher,
                 renderer: PreviewRenderer, notify: Optional[Notify] = None, loop=None):
        self.config = config
        self.buffers = buffers
        self.dispatcher = dispatcher
        self.renderer = renderer
        self.notify = notify
        self.scheduler = TriggerScheduler(
            self._on_timer,
            delay_ms=config.auto_trigger_delay_ms,
            enabled=config.auto_trigger_enabled,
            loop=loop,
        )
        self.store = SuggestionStore(renderer, self.scheduler)
        # Snapshot taken when the live request was dispatched.
        self._request_snapshot: Optional[DocumentSnapshot] = None

    @property
    def state(self) -> SuggestState:
        if self.store.get() is not None:
            return SuggestState.DISPLAYING
        if self.dispatcher.live_token is not None:
            return SuggestState.REQUESTING
        return SuggestState.IDLE

    def has_suggestion(self) -> bool:
        return self.store.get() is not None

    def get_current_suggestion(self) -> Optional[Suggestion]:
        return self.store.get()

    def trigger(self) -> bool:
        """
        Request a suggestion at the cursor.

        Any displayed suggestion is superseded. Returns False when no request
        could be sent.
        """
        snapshot = take_snapshot(self.buffers)
        if snapshot is None:
            return False

        self.store.clear()
        try:
            self.dispatcher.dispatch(snapshot.document_id, snapshot.line, snapshot.column)
        except NoActiveSession as e:
            self._request_snapshot = None
            self._warn(str(e))
            return False

        self._request_snapshot = snapshot
        return True

    def cancel(self) -> None:
        """Abandon any request and discard any suggestion."""
        self.dispatcher.cancel()
        self._request_snapshot = None
        self.store.clear()
        self.scheduler.cancel()

    def clear(self) -> None:
        """Discard the displayed suggestion."""
        self.store.clear()

    def on_response(self, response: CompletionResponse) -> None:
        """Handle a backend outcome delivered on the event loop."""
        if not self.dispatcher.is_live(response.token):
            logger.debug(f"Dropping response for abandoned token {response.token}")
            return

        self.dispatcher.complete(response.token)
        requested = self._request_snapshot
        self._request_snapshot = None

        try:
            if response.error is not None:
                raise BackendError(response.error)
            suggestion = self._validate(response, requested)
        except BackendError as e:
            self.store.clear()
            self._warn(str(e))
            return
        except StaleResponse as e:
            logger.debug(f"Dropping stale response: {e}")
            self.store.clear()
            return

        self.store.set(suggestion)
        suggestion.handles.extend(
            self.renderer.render(suggestion.document_id, suggestion.line, suggestion.column, suggestion.text)
        )

    def _validate(self, response: CompletionResponse, requested: Optional[DocumentSnapshot]) -> Suggestion:
        """Build a suggestion from a response, or raise StaleResponse."""
        if not response.text:
            raise StaleResponse("empty suggestion")
        if not response.uri or requested is None:
            raise StaleResponse("response without a document")

        document_id = self.dispatcher.sessions.document_for_uri(response.uri)
        if document_id is None or not self.buffers.is_valid(document_id):
            raise StaleResponse(f"unknown document {response.uri}")
        if not self.renderer.enabled:
            raise StaleResponse("ghost text display disabled")

        current = take_snapshot(self.buffers)
        if current is None or current.document_id != document_id:
            raise StaleResponse("document is no longer active")
        if current != requested:
            raise StaleResponse("cursor or line changed since the request")
        if response.line != current.line:
            raise StaleResponse(f"response line {response.line} is not the cursor line {current.line}")

        return Suggestion(
            document_id=document_id,
            line=current.line,
            column=current.column,
            text=response.text,
        )

    def accept(self, fallback: Optional[Callable[[], None]] = None) -> bool:
        """
        Splice the displayed suggestion into the buffer.

        When there is nothing valid to accept the suggestion is discarded and
        ``fallback`` (the key's normal action) runs instead.

        Returns:
            True if text was inserted.
        """
        if self._splice():
            return True
        if fallback is not None:
            fallback()
        return False

    def _splice(self) -> bool:
        suggestion = self.store.get()
        if suggestion is None or not suggestion.text:
            return False

        current = take_snapshot(self.buffers)
        if current is None or current.document_id != suggestion.document_id or current.line != suggestion.line:
            self.store.clear()
            return False

        document_id, line = suggestion.document_id, suggestion.line
        line_text = self.buffers.get_line(document_id, line)
        replacement, line_offset, column = splice_suggestion(line_text, suggestion.column, suggestion.text)

        self.buffers.set_lines(document_id, line, line + 1, replacement)
        self.buffers.set_cursor(document_id, line + line_offset, column)
        self.store.clear()
        return True

    # Editor events

    def on_text_changed(self) -> None:
        """Buffer text changed while inserting."""
        self.store.clear()
        self._activity()

    def on_char_pre(self) -> None:
        """A character is about to be inserted."""
        self.store.clear()
        self._activity()

    def on_cursor_moved(self) -> None:
        """Cursor moved while inserting."""
        suggestion = self.store.get()
        if suggestion is not None:
            current = take_snapshot(self.buffers)
            if (current is None
                    or current.document_id != suggestion.document_id
                    or current.line != suggestion.line
                    or current.column < suggestion.column):
                self.store.clear()
        self._activity()

    def on_insert_leave(self) -> None:
        self.cancel()

    def on_buffer_leave(self) -> None:
        self.cancel()

    def on_window_leave(self) -> None:
        self.cancel()

    def shutdown(self) -> None:
        self.cancel()

    def _activity(self) -> None:
        if self.config.auto_trigger_enabled:
            self.scheduler.notify_activity()

    def _on_timer(self) -> None:
        if self.config.auto_trigger_enabled:
            self.trigger()

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self.notify is not None:
            self.notify(message, logging.WARNING)
