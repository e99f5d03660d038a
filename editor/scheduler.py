"""Debounced auto-trigger for inline suggestions."""

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TriggerScheduler:
    """Coalesces bursts of editor activity into one delayed trigger.

    The timer runs on the event loop that owns the editor state, so the
    callback never interleaves with a key handler. Each restart bumps a
    generation counter; a callback whose generation is no longer current
    does nothing even if its handle escaped cancellation.
    """

    def __init__(self, callback: Callable[[], Any], delay_ms: int = 500, enabled: bool = True,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.callback = callback
        self.delay_ms = delay_ms
        self.enabled = enabled
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        """Whether a trigger is scheduled."""
        return self._handle is not None

    def notify_activity(self) -> None:
        """Restart the quiet-period timer."""
        if not self.enabled:
            return

        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        generation = self._generation
        self._handle = loop.call_later(self.delay_ms / 1000, self._fire, generation)

    def cancel(self) -> None:
        """Drop the pending trigger, if any."""
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._handle = None
        if not self.enabled:
            return
        logger.debug("Auto-trigger timer fired")
        self.callback()
