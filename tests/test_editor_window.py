"""Tests for the Qt editor window wiring."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

pytest.importorskip("PySide6.QtWidgets")

from mdpreview.preview.controller import PreviewController
from mdpreview.services.settings import Settings
from mdpreview.ui.editor_window import BufferSource, PreviewEditorWindow
from tests.helpers import FakeRenderer, ServerFactory

pytestmark = pytest.mark.usefixtures("qtbot")

MARKDOWN = "# One\n\nbody\n\n## Two\n\nmore\n"


def _window(qtbot, settings: Settings, factory: ServerFactory, **kwargs) -> PreviewEditorWindow:
    controller = PreviewController(
        settings,
        server_factory=factory,
        browser_opener=lambda _url: None,
    )
    window = PreviewEditorWindow(controller, **kwargs)
    qtbot.addWidget(window.window)
    return window


def _move_to_line(window: PreviewEditorWindow, line: int) -> None:
    editor = window.editor
    block = editor.document().findBlockByNumber(line - 1)
    cursor = editor.textCursor()
    cursor.setPosition(block.position())
    editor.setTextCursor(cursor)


def test_window_exposes_preview_actions(qtbot, settings: Settings) -> None:
    window = _window(qtbot, settings, ServerFactory())

    assert set(window.actions) == {"open", "save", "preview_start", "preview_refresh", "preview_stop"}
    assert window.actions["preview_start"].shortcut == "Ctrl+Shift+P"


def test_typing_updates_buffer(qtbot, settings: Settings) -> None:
    window = _window(qtbot, settings, ServerFactory())

    window.editor.setPlainText("# Draft\n")

    assert window.source.text == "# Draft\n"


def test_open_path_loads_file_and_language(qtbot, settings: Settings, tmp_path: Path) -> None:
    document = tmp_path / "flow.mmd"
    document.write_text("graph TD\r\n  A --> B\r\n", encoding="utf-8")
    window = _window(qtbot, settings, ServerFactory())

    window.open_path(document, line=2)

    assert window.source.text == "graph TD\n  A --> B\n"
    assert window.source.language == "mermaid"
    assert window.source.cursor_line == 2
    assert window.window.windowTitle() == "flow.mmd - mdpreview"


def test_start_preview_reports_running_server(qtbot, settings: Settings) -> None:
    factory = ServerFactory()
    window = _window(qtbot, settings, factory, source=BufferSource(MARKDOWN))

    assert window.start_preview() is True

    assert window.controller.is_running
    assert factory.last.started
    assert window.status_message.startswith("Markdown preview running at")
    window.close()
    assert factory.last.stopped


def test_start_preview_shows_resolution_errors(qtbot, settings: Settings) -> None:
    factory = ServerFactory()
    source = BufferSource("print('hello')\n", path="script.py")
    window = _window(qtbot, settings, factory, source=source)

    assert window.start_preview() is False

    assert window.status_message.startswith("Markdown preview:")
    assert not window.controller.is_running
    assert factory.servers == []


def test_refresh_without_preview_shows_error(qtbot, settings: Settings) -> None:
    window = _window(qtbot, settings, ServerFactory())

    assert window.refresh_preview() is False
    assert "not running" in window.status_message


def test_cursor_moves_scroll_the_preview(qtbot, settings: Settings) -> None:
    factory = ServerFactory()
    window = _window(qtbot, settings, factory, source=BufferSource(MARKDOWN))
    window.start_preview()

    _move_to_line(window, 5)

    assert window.source.cursor_line == 5
    headings = [json.loads(payload)["headingId"] for name, payload in factory.last.events if name == "scroll"]
    assert headings[-1] == "two"
    window.stop_preview()
    assert window.status_message == "Markdown preview stopped"


def test_save_writes_buffer(qtbot, settings: Settings, tmp_path: Path) -> None:
    target = tmp_path / "note.md"
    window = _window(qtbot, settings, ServerFactory(), source=BufferSource("# Saved\n", path=target))

    assert window.save() is True

    assert target.read_text(encoding="utf-8") == "# Saved\n"
    assert window.status_message == f"Saved {target}"


def test_start_preview_mentions_browser_fallback(qtbot, settings: Settings) -> None:
    controller = PreviewController(
        replace(settings, mermaid_renderer="external"),
        server_factory=ServerFactory(),
        browser_opener=lambda _url: None,
        renderer=FakeRenderer(available=False),
    )
    window = PreviewEditorWindow(controller, source=BufferSource(MARKDOWN))
    qtbot.addWidget(window.window)

    assert window.start_preview() is True

    assert window.status_message.endswith("(diagrams rendered in the browser)")
    window.close()
