"""Editing session: wires buffers, backend and the suggestion engine together."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from core.config import Config
from editor.buffers import BufferManager, BufferState
from editor.dispatcher import RequestDispatcher
from editor.ghost_text import OverlayNamespace, PreviewRenderer
from editor.inline_suggest import InlineSuggest
from language.lsp_client import LSPClient
from language.session import SessionManager

logger = logging.getLogger(__name__)


class EditingSession:
    """One editor instance's ghost-text state, with explicit start and close.

    ``loop`` is the event loop that owns the editor; backend responses are
    posted to it with ``call_soon_threadsafe`` and auto-trigger timers run on
    it.
    """

    def __init__(self, config: Config, loop: Optional[asyncio.AbstractEventLoop] = None,
                 buffers: Optional[BufferManager] = None,
                 notify: Optional[Callable[[str, int], None]] = None,
                 client_factory: Callable[..., Any] = LSPClient,
                 invalidate: Optional[Callable[[], None]] = None,
                 prime_in_background: bool = True):
        self.config = config
        self.loop = loop
        self.buffers = buffers or BufferManager()
        self.notify = notify
        self.namespace = OverlayNamespace()
        self.renderer = PreviewRenderer(
            self.namespace,
            hl_group=config.ghost_text_hl_group,
            enabled=config.ghost_text_enabled,
            invalidate=invalidate,
        )
        self.sessions = SessionManager(config, warn=self._warn, client_factory=client_factory,
                                       prime_in_background=prime_in_background)
        self.dispatcher = RequestDispatcher(self.sessions, self._post, self._on_response)
        self.engine = InlineSuggest(config, self.buffers, self.dispatcher, self.renderer,
                                    notify=notify, loop=loop)
        self.started = False

    def start(self) -> None:
        """Attach already-open buffers and start following buffer events."""
        if self.started:
            return
        self.started = True
        self.buffers.open_listeners.append(self._on_buffer_opened)
        self.buffers.leave_listeners.append(self._on_buffer_leave)
        for key in self.buffers.list():
            self._on_buffer_opened(self.buffers.get(key))

    def close(self) -> None:
        """Tear down the engine and stop every backend."""
        if not self.started:
            return
        self.engine.shutdown()
        if self._on_buffer_opened in self.buffers.open_listeners:
            self.buffers.open_listeners.remove(self._on_buffer_opened)
        if self._on_buffer_leave in self.buffers.leave_listeners:
            self.buffers.leave_listeners.remove(self._on_buffer_leave)
        self.sessions.shutdown()
        self.started = False

    def open(self, path: Path) -> str:
        """Open a file and make it the active buffer."""
        return self.buffers.open(path)

    # Public API

    def trigger(self) -> bool:
        return self.engine.trigger()

    def cancel(self) -> None:
        self.engine.cancel()

    def clear(self) -> None:
        self.engine.clear()

    def accept(self, fallback: Optional[Callable[[], None]] = None) -> bool:
        return self.engine.accept(fallback)

    def has_suggestion(self) -> bool:
        return self.engine.has_suggestion()

    def get_config(self) -> Config:
        return self.config

    def status(self) -> Dict[str, Any]:
        """Summary for the status bar."""
        return {
            "state": self.engine.state.value,
            "backends": len(self.sessions.sessions),
            "auto_trigger": self.config.auto_trigger_enabled,
        }

    # Wiring

    def _post(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self.loop
        if loop is None or loop.is_closed():
            logger.debug("Event loop unavailable, dropping backend event")
            return
        loop.call_soon_threadsafe(callback, *args)

    def _on_response(self, response) -> None:
        self.engine.on_response(response)

    def _on_buffer_opened(self, state: BufferState) -> None:
        path = str(state.path) if state.path else None
        self.sessions.attach(state.key, path, state.text)
        state.buffer.on_text_changed += lambda _buffer, key=state.key: self._on_text_changed(key)

    def _on_text_changed(self, key: str) -> None:
        state = self.buffers.get(key)
        if state is not None:
            self.sessions.sync(key, state.text)

    def _on_buffer_leave(self, key: str) -> None:
        self.engine.on_buffer_leave()

    def _warn(self, message: str) -> None:
        # May be called from the priming thread.
        logger.warning(message)
        if self.notify is None:
            return
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.notify, message, logging.WARNING)
        else:
            self.notify(message, logging.WARNING)
