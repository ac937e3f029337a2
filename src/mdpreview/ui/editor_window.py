"""Minimal Qt editor that drives a live preview.

Business state lives in :class:`BufferSource` (plain Python, usable without
Qt); :class:`PreviewEditorWindow` wires a ``QPlainTextEdit`` to it and routes
text, cursor and save signals into a :class:`PreviewController`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ..editor.document_model import (
    CursorPosition,
    Document,
    EditorSnapshot,
    language_for_path,
)
from ..preview.controller import EditorEvent, PreviewController
from ..preview.errors import PreviewError
from ..utils import file_io

__all__ = ["BufferSource", "WindowAction", "PreviewEditorWindow"]

LOGGER = logging.getLogger(__name__)
_STATUS_TIMEOUT_MS = 5000


def _buffer_language(path: Optional[Path]) -> str:
    # Unsaved buffers are treated as markdown notes.
    return "markdown" if path is None else language_for_path(path)


class BufferSource:
    """In-memory document buffer exposed as an :class:`EditorSource`."""

    def __init__(
        self,
        text: str = "",
        *,
        path: Path | str | None = None,
        language: str | None = None,
    ) -> None:
        self._text = text
        self._path = Path(path).expanduser() if path is not None else None
        self._language = language or _buffer_language(self._path)
        self._line = 1
        self._document_id = uuid.uuid4().hex

    @property
    def text(self) -> str:
        return self._text

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def language(self) -> str:
        return self._language

    @property
    def cursor_line(self) -> int:
        return self._line

    def set_text(self, text: str) -> None:
        self._text = text

    def set_cursor(self, line: int) -> None:
        self._line = max(1, int(line))

    def set_path(self, path: Path | str | None, *, language: str | None = None) -> None:
        """Rebind the buffer to another file; the document identity changes too."""

        self._path = Path(path).expanduser() if path is not None else None
        self._language = language or _buffer_language(self._path)
        self._document_id = uuid.uuid4().hex

    def snapshot(self) -> EditorSnapshot:
        document = Document.from_text(
            self._text,
            language=self._language,
            path=self._path,
            document_id=self._document_id,
        )
        return EditorSnapshot(document=document, cursor=CursorPosition(self._line))


@dataclass(slots=True)
class WindowAction:
    """Declarative description of a menu/toolbar action."""

    name: str
    text: str
    shortcut: str | None = None
    status_tip: str | None = None
    callback: Callable[[], Any] | None = None

    def trigger(self) -> None:
        if self.callback is not None:
            self.callback()


_MENU_LAYOUT: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("&File", ("open", "save")),
    ("&Preview", ("preview_start", "preview_refresh", "preview_stop")),
)


class PreviewEditorWindow:
    """Main window: one plain-text editor plus preview commands."""

    def __init__(self, controller: PreviewController, *, source: BufferSource | None = None) -> None:
        self._controller = controller
        self._source = source or BufferSource()
        self._status_message = ""
        self._loading = False
        self._window: Any = None
        self._editor: Any = None
        self._actions = self._create_actions()
        self._qt_actions: dict[str, Any] = {}
        self._build_ui()
        controller.add_error_listener(self._handle_background_error)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def controller(self) -> PreviewController:
        return self._controller

    @property
    def source(self) -> BufferSource:
        return self._source

    @property
    def window(self) -> Any:
        return self._window

    @property
    def editor(self) -> Any:
        return self._editor

    @property
    def actions(self) -> dict[str, WindowAction]:
        return dict(self._actions)

    @property
    def status_message(self) -> str:
        return self._status_message

    def show(self) -> None:
        self._window.show()

    # ------------------------------------------------------------------
    # File handling
    # ------------------------------------------------------------------
    def open_path(self, path: Path | str, *, line: int = 1) -> None:
        target = Path(path).expanduser()
        text = file_io.read_text(target) if target.exists() else ""
        self._source.set_path(target)
        self._loading = True
        try:
            self._editor.setPlainText(text)
        finally:
            self._loading = False
        self._source.set_text(text)
        self._move_cursor(line)
        self._window.setWindowTitle(f"{target.name} - mdpreview")
        self.show_status(f"Opened {target}")

    def save(self) -> bool:
        path = self._source.path
        if path is None:
            path = self._ask_save_path()
            if path is None:
                return False
            self._source.set_path(path)
        try:
            file_io.write_text(path, self._source.text)
        except OSError as exc:
            self.show_error(f"Unable to save {path}: {exc}")
            return False
        self.show_status(f"Saved {path}")
        self._controller.handle_event(EditorEvent.WRITE_COMPLETED)
        return True

    # ------------------------------------------------------------------
    # Preview commands
    # ------------------------------------------------------------------
    def start_preview(self) -> bool:
        try:
            self._controller.start(self._source)
        except PreviewError as exc:
            self.show_error(f"Markdown preview: {exc}")
            return False
        url = getattr(self._controller.server, "url", None) or self._controller.settings.server_url()
        message = f"Markdown preview running at {url}"
        renderer = self._controller.renderer
        if renderer is not None and not renderer.is_available():
            message += " (diagrams rendered in the browser)"
        self.show_status(message)
        return True

    def refresh_preview(self) -> bool:
        try:
            changed = self._controller.refresh()
        except PreviewError as exc:
            self.show_error(f"Markdown preview: {exc}")
            return False
        self.show_status("Markdown preview updated" if changed else "Markdown preview: no changes detected")
        return changed

    def stop_preview(self) -> None:
        self._controller.stop()
        self.show_status("Markdown preview stopped")

    def close(self) -> None:
        self._controller.stop()
        if self._window is not None:
            self._window.close()

    # ------------------------------------------------------------------
    # Status bar
    # ------------------------------------------------------------------
    def show_status(self, message: str) -> None:
        self._status_message = message
        status_bar = self._window.statusBar() if self._window is not None else None
        if status_bar is not None:
            status_bar.showMessage(message, _STATUS_TIMEOUT_MS)

    def show_error(self, message: str) -> None:
        LOGGER.warning(message)
        self._status_message = message
        status_bar = self._window.statusBar() if self._window is not None else None
        if status_bar is not None:
            status_bar.showMessage(message)

    # ------------------------------------------------------------------
    # Signal handlers
    # ------------------------------------------------------------------
    def _on_text_changed(self) -> None:
        if self._loading:
            return
        self._source.set_text(self._editor.toPlainText())
        self._controller.handle_event(EditorEvent.TEXT_CHANGED)

    def _on_cursor_moved(self) -> None:
        line = self._editor.textCursor().blockNumber() + 1
        if line == self._source.cursor_line:
            return
        self._source.set_cursor(line)
        self._controller.handle_event(EditorEvent.CURSOR_MOVED)

    def _handle_background_error(self, error: PreviewError) -> None:
        self.show_error(f"Markdown preview: {error}")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _create_actions(self) -> dict[str, WindowAction]:
        definitions = (
            WindowAction("open", "&Open...", "Ctrl+O", "Open a document", self._open_dialog),
            WindowAction("save", "&Save", "Ctrl+S", "Save the document", self.save),
            WindowAction(
                "preview_start",
                "&Start Preview",
                "Ctrl+Shift+P",
                "Start (or retarget) the live preview",
                self.start_preview,
            ),
            WindowAction(
                "preview_refresh", "&Refresh Preview", "Ctrl+Shift+R", "Refresh the preview now", self.refresh_preview
            ),
            WindowAction("preview_stop", "S&top Preview", None, "Stop the live preview", self.stop_preview),
        )
        return {action.name: action for action in definitions}

    def _build_ui(self) -> None:
        try:
            from PySide6.QtGui import QAction
            from PySide6.QtWidgets import QApplication, QMainWindow, QPlainTextEdit
        except ImportError as exc:  # pragma: no cover - depends on desktop stack
            raise RuntimeError("PySide6 must be installed to open the editor window.") from exc

        if QApplication.instance() is None:
            raise RuntimeError("QApplication must exist before constructing widgets")

        window = QMainWindow()
        window.setWindowTitle("mdpreview")
        window.resize(900, 700)
        editor = QPlainTextEdit(window)
        editor.setPlainText(self._source.text)
        window.setCentralWidget(editor)

        menubar = window.menuBar()
        for title, names in _MENU_LAYOUT:
            menu = menubar.addMenu(title)
            for name in names:
                definition = self._actions[name]
                qt_action = QAction(definition.text, window)
                if definition.shortcut:
                    qt_action.setShortcut(definition.shortcut)
                if definition.status_tip:
                    qt_action.setStatusTip(definition.status_tip)
                qt_action.triggered.connect(definition.trigger)
                menu.addAction(qt_action)
                self._qt_actions[name] = qt_action

        editor.textChanged.connect(self._on_text_changed)
        editor.cursorPositionChanged.connect(self._on_cursor_moved)
        self._window = window
        self._editor = editor

    def _move_cursor(self, line: int) -> None:
        block = self._editor.document().findBlockByNumber(max(0, line - 1))
        if block.isValid():
            cursor = self._editor.textCursor()
            cursor.setPosition(block.position())
            self._editor.setTextCursor(cursor)
        self._source.set_cursor(line)

    def _open_dialog(self) -> None:
        from PySide6.QtWidgets import QFileDialog

        filename, _ = QFileDialog.getOpenFileName(
            self._window, "Open document", "", "Markdown (*.md *.markdown *.qmd *.mdx);;Mermaid (*.mmd *.mermaid);;All files (*)"
        )
        if filename:
            self.open_path(filename)

    def _ask_save_path(self) -> Optional[Path]:
        from PySide6.QtWidgets import QFileDialog

        filename, _ = QFileDialog.getSaveFileName(self._window, "Save document", "", "Markdown (*.md);;All files (*)")
        return Path(filename) if filename else None
