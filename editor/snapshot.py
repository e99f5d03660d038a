"""Point-in-time view of the active document and cursor."""

from dataclasses import dataclass
from typing import Optional

from editor.buffers import BufferManager


@dataclass(frozen=True)
class DocumentSnapshot:
    """Document identity, cursor and cursor line at one instant."""
    document_id: str
    line: int
    column: int
    line_text: str


def take_snapshot(buffers: BufferManager) -> Optional[DocumentSnapshot]:
    """Read the active buffer afresh; None when no buffer is active."""
    state = buffers.active()
    if state is None:
        return None

    document = state.document
    return DocumentSnapshot(
        document_id=state.key,
        line=document.cursor_position_row,
        column=document.cursor_position_col,
        line_text=document.current_line,
    )
