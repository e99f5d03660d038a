"""Ghost text overlays: projection, per-document namespace and painting."""

import itertools
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.processors import Processor, Transformation, TransformationInput
from prompt_toolkit.layout.utils import explode_text_fragments

INLINE = "inline"
VIRTUAL_LINES = "virtual_lines"


@dataclass(frozen=True)
class Overlay:
    """One drawn piece of ghost text."""
    handle: int
    kind: str
    line: int
    column: int
    lines: Tuple[str, ...]
    style: str


def project_overlays(line: int, column: int, text: str, style: str) -> List[Overlay]:
    """
    Turn suggestion text into overlay instructions.

    The first line becomes an inline overlay at the anchor; any further lines
    become a single virtual-lines block below it so their order is kept. An
    empty first line produces no inline overlay. Handles are left at 0 until
    the overlays are added to a namespace.
    """
    lines = text.split("\n")
    overlays = []
    if lines[0]:
        overlays.append(Overlay(0, INLINE, line, column, (lines[0],), style))
    if len(lines) > 1:
        overlays.append(Overlay(0, VIRTUAL_LINES, line, column, tuple(lines[1:]), style))
    return overlays


class OverlayNamespace:
    """Overlays drawn by this session, grouped by document."""

    def __init__(self) -> None:
        self._overlays: Dict[str, List[Overlay]] = {}
        self._handles = itertools.count(1)

    def add(self, document_id: str, overlay: Overlay) -> int:
        overlay = replace(overlay, handle=next(self._handles))
        self._overlays.setdefault(document_id, []).append(overlay)
        return overlay.handle

    def clear(self, document_id: str) -> None:
        self._overlays.pop(document_id, None)

    def get(self, document_id: Optional[str]) -> List[Overlay]:
        if document_id is None:
            return []
        return list(self._overlays.get(document_id, []))

    def documents(self) -> List[str]:
        return list(self._overlays)


class PreviewRenderer:
    """Draws suggestion text as overlays without touching buffer content."""

    def __init__(self, namespace: Optional[OverlayNamespace] = None, hl_group: str = "comment",
                 enabled: bool = True, invalidate: Optional[Callable[[], None]] = None):
        self.namespace = namespace or OverlayNamespace()
        self.hl_group = hl_group
        self.enabled = enabled
        self.invalidate = invalidate

    @property
    def style(self) -> str:
        return f"class:{self.hl_group}"

    def render(self, document_id: str, line: int, column: int, text: str) -> List[int]:
        """Replace the document's overlays with ones for ``text``; returns their handles."""
        self.namespace.clear(document_id)
        handles = []
        if self.enabled:
            for overlay in project_overlays(line, column, text, self.style):
                handles.append(self.namespace.add(document_id, overlay))
        self._redraw()
        return handles

    def clear(self, document_id: str) -> None:
        """Remove every overlay drawn on a document."""
        self.namespace.clear(document_id)
        self._redraw()

    def overlays(self, document_id: Optional[str]) -> List[Overlay]:
        return self.namespace.get(document_id)

    def _redraw(self) -> None:
        if self.invalidate is not None:
            self.invalidate()


class GhostTextProcessor(Processor):
    """Paints the inline overlay of the displayed document into its line."""

    def __init__(self, namespace: OverlayNamespace, get_document_id: Callable[[], Optional[str]]):
        self.namespace = namespace
        self.get_document_id = get_document_id

    def apply_transformation(self, ti: TransformationInput) -> Transformation:
        overlay = next(
            (o for o in self.namespace.get(self.get_document_id()) if o.kind == INLINE and o.line == ti.lineno),
            None,
        )
        if overlay is None:
            return Transformation(ti.fragments)

        fragments = explode_text_fragments(ti.fragments)
        position = min(ti.source_to_display(overlay.column), len(fragments))
        ghost = overlay.lines[0]
        width = len(ghost)
        new_fragments: StyleAndTextTuples = fragments[:position] + [(overlay.style, ghost)] + fragments[position:]

        # The cursor stays in front of the ghost text.
        def source_to_display(i: int) -> int:
            return i if i <= position else i + width

        def display_to_source(i: int) -> int:
            if i <= position:
                return i
            if i >= position + width:
                return i - width
            return position

        return Transformation(new_fragments, source_to_display=source_to_display,
                              display_to_source=display_to_source)


class GhostLinesControl(FormattedTextControl):
    """Shows the virtual-lines overlay of the displayed document."""

    def __init__(self, namespace: OverlayNamespace, get_document_id: Callable[[], Optional[str]]):
        self.namespace = namespace
        self.get_document_id = get_document_id
        super().__init__(text=self._get_fragments, focusable=False)

    def _block(self) -> Optional[Overlay]:
        return next((o for o in self.namespace.get(self.get_document_id()) if o.kind == VIRTUAL_LINES), None)

    def has_lines(self) -> bool:
        return self._block() is not None

    def line_count(self) -> int:
        block = self._block()
        return len(block.lines) if block else 0

    def _get_fragments(self) -> StyleAndTextTuples:
        block = self._block()
        if block is None:
            return []
        return [(block.style, "\n".join(block.lines))]
