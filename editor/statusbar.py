"""Status bar component."""

import logging
from typing import Callable, Dict, Optional

from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.layout.controls import FormattedTextControl

LEVEL_STYLES = {
    logging.WARNING: "class:status.warning",
    logging.ERROR: "class:status.error",
}


class StatusBar:
    """Status bar with buffer, mode and ghost-text state."""

    def __init__(self, get_status: Optional[Callable[[], Dict[str, str]]] = None):
        self.get_status = get_status
        self.current_message = "Ready"
        self.message_level = logging.INFO
        self.control = FormattedTextControl(text=self._format_status)

    def set_message(self, message: str, level: int = logging.INFO):
        """Set the current status message."""
        self.current_message = message
        self.message_level = level

    def notify(self, message: str, level: int = logging.INFO):
        """Show a user-facing notification."""
        self.set_message(message, level)

    def _format_status(self) -> FormattedText:
        """Format the status bar text."""
        parts = []
        if self.get_status is not None:
            status = self.get_status()
            if status.get("buffer"):
                parts.append(status["buffer"])
            if status.get("mode"):
                parts.append(status["mode"])
            if status.get("ghost"):
                parts.append(f"ghost: {status['ghost']}")

        fragments = [("class:status", " | ".join(parts))]
        if self.current_message:
            style = LEVEL_STYLES.get(self.message_level, "class:status")
            fragments.append(("class:status", " | " if parts else ""))
            fragments.append((style, self.current_message))
        return FormattedText(fragments)
