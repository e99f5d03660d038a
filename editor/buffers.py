"""Multi-buffer management."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from prompt_toolkit.buffer import Buffer
from prompt_toolkit.document import Document


@dataclass
class BufferState:
    """State of a buffer."""
    key: str
    path: Optional[Path]
    buffer: Buffer = field(default_factory=Buffer)
    dirty: bool = False

    @property
    def text(self) -> str:
        return self.buffer.text

    @property
    def document(self) -> Document:
        return self.buffer.document


class BufferManager:
    """Manages multiple prompt_toolkit buffers, one of which is active."""

    def __init__(self) -> None:
        self.buffers: Dict[str, BufferState] = {}
        self.active_key: Optional[str] = None
        self.leave_listeners: List[Callable[[str], None]] = []
        self.open_listeners: List[Callable[[BufferState], None]] = []

    def open(self, path: Path) -> str:
        """
        Open a file in a new buffer and make it active.

        Args:
            path: Path to the file.

        Returns:
            Buffer key.
        """
        key = str(path.resolve())
        if key not in self.buffers:
            try:
                text = path.read_text(encoding='utf-8')
            except FileNotFoundError:
                text = ""
            self._add(BufferState(key=key, path=path.resolve(), buffer=Buffer(document=Document(text, 0))))
        self.activate(key)
        return key

    def open_text(self, key: str, text: str = "", path: Optional[Path] = None) -> str:
        """
        Open an in-memory buffer and make it active.

        Args:
            key: Buffer key.
            text: Initial content.
            path: Optional backing path.

        Returns:
            Buffer key.
        """
        if key not in self.buffers:
            self._add(BufferState(key=key, path=path, buffer=Buffer(document=Document(text, 0))))
        self.activate(key)
        return key

    def _add(self, state: BufferState) -> None:
        self.buffers[state.key] = state
        for listener in list(self.open_listeners):
            listener(state)

    def get(self, key: str) -> Optional[BufferState]:
        """Get a buffer by key."""
        return self.buffers.get(key)

    def list(self) -> List[str]:
        """List all buffer keys."""
        return list(self.buffers.keys())

    def active(self) -> Optional[BufferState]:
        """
        Get the active buffer.

        Returns:
            Active buffer state or None.
        """
        if self.active_key:
            return self.buffers.get(self.active_key)
        return None

    def activate(self, key: str) -> None:
        """
        Activate a buffer.

        Leave listeners run with the previous key before the switch.

        Args:
            key: Buffer key to activate.
        """
        if key not in self.buffers or key == self.active_key:
            return
        previous = self.active_key
        if previous is not None:
            for listener in list(self.leave_listeners):
                listener(previous)
        self.active_key = key

    def is_valid(self, key: Optional[str]) -> bool:
        return key is not None and key in self.buffers

    def cursor(self, key: str) -> Tuple[int, int]:
        """Cursor of a buffer as (line, column), both 0-based."""
        document = self.buffers[key].document
        return document.cursor_position_row, document.cursor_position_col

    def get_line(self, key: str, line: int) -> str:
        """Text of one line, or an empty string past the end."""
        lines = self.buffers[key].document.lines
        if 0 <= line < len(lines):
            return lines[line]
        return ""

    def set_lines(self, key: str, start: int, end: int, replacement: List[str]) -> None:
        """
        Replace lines ``start`` to ``end`` (exclusive) with ``replacement``.

        The cursor keeps its absolute offset, clamped to the new text.
        """
        state = self.buffers[key]
        document = state.document
        lines = list(document.lines)
        lines[start:end] = replacement
        text = "\n".join(lines)
        cursor = min(document.cursor_position, len(text))
        state.buffer.set_document(Document(text, cursor), bypass_readonly=True)
        state.dirty = True

    def set_cursor(self, key: str, line: int, column: int) -> None:
        """Move the cursor of a buffer to (line, column)."""
        state = self.buffers[key]
        document = state.document
        line = max(0, min(line, document.line_count - 1))
        column = max(0, min(column, len(document.lines[line])))
        state.buffer.cursor_position = document.translate_row_col_to_index(line, column)

    def save(self, key: str) -> bool:
        """Write a buffer to its path."""
        state = self.buffers.get(key)
        if state is None or state.path is None:
            return False
        state.path.write_text(state.text, encoding='utf-8')
        state.dirty = False
        return True
