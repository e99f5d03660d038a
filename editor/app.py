"""Terminal editor application hosting the ghost-text engine."""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional

from prompt_toolkit import Application
from prompt_toolkit.application import get_app
from prompt_toolkit.enums import EditingMode
from prompt_toolkit.filters import Condition, vi_insert_mode
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.key_binding.vi_state import InputMode
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import ConditionalContainer, DynamicContainer, Float, FloatContainer, HSplit, VSplit, Window
from prompt_toolkit.layout.controls import BufferControl, FormattedTextControl
from prompt_toolkit.layout.dimension import Dimension
from prompt_toolkit.layout.layout import Layout
from prompt_toolkit.styles import Style

from core.config import Config, get_config
from editor.buffers import BufferState
from editor.filetree import project_entries
from editor.ghost_text import GhostLinesControl, GhostTextProcessor
from editor.session import EditingSession
from editor.statusbar import StatusBar

logger = logging.getLogger(__name__)

# Text a key inserts when it has nothing else to do.
DEFAULT_KEY_TEXT = {
    "tab": "\t",
    "c-i": "\t",
    "enter": "\n",
    "c-m": "\n",
    "c-j": "\n",
    "space": " ",
}

SCRATCH_KEY = "[scratch]"


def default_key_text(key: str) -> str:
    """Literal text for an accept key's normal action."""
    if key in DEFAULT_KEY_TEXT:
        return DEFAULT_KEY_TEXT[key]
    if len(key) == 1:
        return key
    return ""


class ProjectFilesPanel:
    """Sidebar listing the project's tracked files."""

    def __init__(self, editor: "EditorApp"):
        self.editor = editor
        self.visible = False
        self.selected_index = 0
        self.root, self.entries = project_entries(warn=lambda message: editor.status_bar.notify(message, logging.WARNING))
        self.control = FormattedTextControl(text=self._format, focusable=True, key_bindings=self._key_bindings())
        self.window = Window(self.control, width=32)

    def get_layout(self):
        """Get panel layout."""
        return ConditionalContainer(self.window, filter=Condition(lambda: self.visible))

    def _format(self) -> FormattedText:
        lines = []
        for i, (display, _) in enumerate(self.entries):
            style = "class:panel.selected" if i == self.selected_index else "class:panel"
            lines.append((style, f"{display}\n"))
        return FormattedText(lines)

    def _key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add('up')
        def _up(event):
            self.selected_index = max(0, self.selected_index - 1)

        @kb.add('down')
        def _down(event):
            self.selected_index = min(len(self.entries) - 1, self.selected_index + 1)

        @kb.add('enter')
        def _open(event):
            if not self.entries or self.root is None:
                return
            relative = self.entries[self.selected_index][1]
            if relative:
                self.editor.open(self.root / relative)
                self.editor.focus_editor()

        return kb


class EditorApp:
    """Editor layout, key bindings and editor-event routing."""

    def __init__(self, config: Config, loop: asyncio.AbstractEventLoop):
        self.config = config
        self.status_bar = StatusBar(self._status)
        self.session = EditingSession(
            config,
            loop=loop,
            notify=self.status_bar.notify,
            invalidate=self._invalidate,
        )
        self.buffers = self.session.buffers
        self.windows: Dict[str, Window] = {}
        self.buffers.open_listeners.append(self._on_buffer_opened)
        self.ghost_lines = GhostLinesControl(self.session.namespace, lambda: self.buffers.active_key)
        self.panel = ProjectFilesPanel(self)
        self.application: Optional[Application] = None

    # Buffers

    def open(self, path: Path) -> str:
        return self.buffers.open(path)

    def _on_buffer_opened(self, state: BufferState) -> None:
        key = state.key
        control = BufferControl(
            buffer=state.buffer,
            input_processors=[GhostTextProcessor(self.session.namespace, lambda key=key: key)],
        )
        self.windows[key] = Window(control)
        state.buffer.on_text_changed += lambda _buffer, key=key: self._on_text_changed(key)
        state.buffer.on_cursor_position_changed += lambda _buffer, key=key: self._on_cursor_moved(key)

    def _editor_window(self) -> Window:
        key = self.buffers.active_key
        if key is None or key not in self.windows:
            return Window(FormattedTextControl("No buffer"))
        return self.windows[key]

    def focus_editor(self) -> None:
        if self.application is not None:
            self.application.layout.focus(self._editor_window())

    def cycle_buffer(self, step: int) -> None:
        keys = self.buffers.list()
        if len(keys) < 2 or self.buffers.active_key not in keys:
            return
        index = (keys.index(self.buffers.active_key) + step) % len(keys)
        self.buffers.activate(keys[index])
        self.focus_editor()

    # Editor events

    def _inserting(self) -> bool:
        return self.application is not None and self.application.vi_state.input_mode == InputMode.INSERT

    def _on_text_changed(self, key: str) -> None:
        if key == self.buffers.active_key and self._inserting():
            self.session.engine.on_text_changed()

    def _on_cursor_moved(self, key: str) -> None:
        if key == self.buffers.active_key and self._inserting():
            self.session.engine.on_cursor_moved()

    def _invalidate(self) -> None:
        if self.application is not None:
            self.application.invalidate()

    def _status(self) -> Dict[str, str]:
        state = self.buffers.active()
        mode = "INSERT" if self._inserting() else "NORMAL"
        dirty = " [+]" if state is not None and state.dirty else ""
        return {
            "buffer": f"{state.key}{dirty}" if state else "",
            "mode": mode,
            "ghost": self.session.engine.state.value,
        }

    # Application

    def _key_bindings(self) -> KeyBindings:
        kb = KeyBindings()
        engine = self.session.engine
        editor_focused = Condition(lambda: not self.panel.visible or get_app().layout.has_focus(self._editor_window()))
        inserting = vi_insert_mode & editor_focused

        @kb.add('c-q')
        def quit_app(event):
            """Quit the application."""
            event.app.exit()

        @kb.add('c-s')
        def save_buffer(event):
            """Save the active buffer."""
            key = self.buffers.active_key
            if key and self.buffers.save(key):
                self.status_bar.set_message(f"Saved {key}")
            else:
                self.status_bar.set_message("Nothing to save", logging.WARNING)

        @kb.add(self.config.trigger_key, filter=inserting)
        def trigger_ghost_text(event):
            """Trigger ghost text completion."""
            engine.trigger()

        @kb.add(self.config.accept_key, filter=inserting)
        def accept_ghost_text(event):
            """Accept ghost text or run the key's normal action."""
            buffer = event.current_buffer
            text = default_key_text(self.config.accept_key)

            def fallback():
                if text:
                    engine.on_char_pre()
                    buffer.insert_text(text)

            engine.accept(fallback)

        @kb.add(Keys.Any, filter=inserting)
        def self_insert(event):
            """Insert a character, invalidating ghost text first."""
            if not event.data or not event.data.isprintable():
                return
            engine.on_char_pre()
            event.current_buffer.insert_text(event.data * event.arg)

        @kb.add('escape', filter=inserting, eager=True)
        def leave_insert(event):
            """Leave insert mode."""
            engine.on_insert_leave()
            event.app.vi_state.input_mode = InputMode.NAVIGATION

        @kb.add('escape', 'c')
        def cancel_ghost_text(event):
            """Cancel ghost text."""
            engine.cancel()

        @kb.add('escape', 'right')
        def next_buffer(event):
            """Switch to the next buffer."""
            self.cycle_buffer(1)

        @kb.add('escape', 'left')
        def previous_buffer(event):
            """Switch to the previous buffer."""
            self.cycle_buffer(-1)

        @kb.add('c-b')
        def toggle_project_panel(event):
            """Toggle the project file panel and move focus to it."""
            if not self.panel.visible:
                engine.on_window_leave()
                self.panel.visible = True
                event.app.layout.focus(self.panel.window)
            else:
                self.panel.visible = False
                self.focus_editor()

        return kb

    def create_application(self) -> Application:
        """Create the prompt_toolkit application."""
        body = FloatContainer(
            content=VSplit([
                self.panel.get_layout(),
                DynamicContainer(self._editor_window),
            ]),
            floats=[
                Float(
                    left=0,
                    ycursor=True,
                    content=ConditionalContainer(
                        Window(self.ghost_lines, height=lambda: Dimension.exact(max(1, self.ghost_lines.line_count()))),
                        filter=Condition(self.ghost_lines.has_lines),
                    ),
                ),
            ],
        )
        layout = Layout(HSplit([
            body,
            Window(self.status_bar.control, height=1, style="class:status"),
        ]))

        style = Style.from_dict({
            'status': 'bg:#444444 #ffffff',
            'status.warning': 'bg:#444444 #ffcc00 bold',
            'status.error': 'bg:#444444 #ff5555 bold',
            'panel': '#bbbbbb',
            'panel.selected': 'reverse',
            self.config.ghost_text_hl_group: 'italic #808080',
        })

        self.application = Application(
            layout=layout,
            key_bindings=self._key_bindings(),
            style=style,
            editing_mode=EditingMode.VI,
            full_screen=True,
        )
        self.application.vi_state.input_mode = InputMode.INSERT
        self.focus_editor()
        return self.application


async def run_editor(paths: List[Path], config: Optional[Config] = None) -> None:
    """Run the editor until the user quits."""
    config = config or get_config()
    editor = EditorApp(config, asyncio.get_running_loop())
    if paths:
        for path in paths:
            editor.open(path)
        editor.buffers.activate(str(paths[0].resolve()))
    else:
        editor.buffers.open_text(SCRATCH_KEY)

    application = editor.create_application()
    editor.session.start()
    logger.info(f"Editor started with {len(editor.buffers.list())} buffers")
    try:
        await application.run_async()
    finally:
        editor.session.close()


def create_app(paths: Optional[List[Path]] = None, config: Optional[Config] = None):
    """Run the editor on a fresh event loop."""
    asyncio.run(run_editor(list(paths or []), config))
