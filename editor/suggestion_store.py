"""Holder for the single live suggestion."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from editor.ghost_text import PreviewRenderer
from editor.scheduler import TriggerScheduler

logger = logging.getLogger(__name__)


@dataclass
class Suggestion:
    """Suggestion text anchored at a position in a document."""
    document_id: str
    line: int
    column: int
    text: str
    handles: List[int] = field(default_factory=list)

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n")


class SuggestionStore:
    """Owns at most one suggestion and the overlays drawn for it.

    Replacing or clearing the suggestion always releases its overlays first
    and cancels any pending auto-trigger.
    """

    def __init__(self, renderer: PreviewRenderer, scheduler: Optional[TriggerScheduler] = None):
        self.renderer = renderer
        self.scheduler = scheduler
        self._suggestion: Optional[Suggestion] = None

    def get(self) -> Optional[Suggestion]:
        """The current suggestion; callers must re-validate it."""
        return self._suggestion

    def set(self, suggestion: Suggestion) -> None:
        """Replace the current suggestion."""
        self._release()
        self._suggestion = suggestion
        self._cancel_timer()

    def clear(self) -> None:
        """Drop the current suggestion; a no-op when empty."""
        self._release()
        self._suggestion = None
        self._cancel_timer()

    def _release(self) -> None:
        if self._suggestion is None:
            return
        logger.debug(f"Releasing {len(self._suggestion.handles)} overlays on {self._suggestion.document_id}")
        self.renderer.clear(self._suggestion.document_id)
        self._suggestion.handles.clear()

    def _cancel_timer(self) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel()
