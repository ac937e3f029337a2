"""Tests for document snapshots and cursor handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from mdpreview.editor.document_model import (
    CursorPosition,
    Document,
    DocumentKind,
    language_for_path,
)


def test_from_text_normalizes_newlines_and_drops_final_break() -> None:
    document = Document.from_text("one\r\ntwo\rthree\n")

    assert document.lines == ("one", "two", "three")
    assert document.text == "one\ntwo\nthree"
    assert document.line_count == 3


def test_from_text_keeps_blank_trailing_lines_beyond_the_last_break() -> None:
    document = Document.from_text("a\n\n")

    assert document.lines == ("a", "")


def test_kind_prefers_language_then_suffix() -> None:
    assert Document.from_text("x", language="markdown").kind() is DocumentKind.PROSE
    assert Document.from_text("x", language="text", path="flow.MMD").kind() is DocumentKind.STANDALONE_DIAGRAM
    assert Document.from_text("x", language="python", path="tool.py").kind() is DocumentKind.OTHER
    assert (
        Document.from_text("x", language="text", path="flow.dot").kind(diagram_suffixes=(".dot",))
        is DocumentKind.STANDALONE_DIAGRAM
    )


def test_origin_uses_resolved_path_or_document_id(tmp_path: Path) -> None:
    named = Document.from_text("x", path=tmp_path / "a.md")
    unnamed = Document.from_text("x", document_id="abc")

    assert named.origin == str((tmp_path / "a.md").resolve())
    assert unnamed.origin == "untitled:abc"


def test_cursor_rejects_non_positive_lines_and_clamps() -> None:
    with pytest.raises(ValueError):
        CursorPosition(0)

    cursor = CursorPosition(40)
    assert cursor.clamp(["a", "b"]) == 2
    assert cursor.clamp([]) == 1


@pytest.mark.parametrize(
    ("name", "expected"),
    [("notes.md", "markdown"), ("report.qmd", "quarto"), ("flow.mermaid", "mermaid"), ("main.py", "text")],
)
def test_language_for_path(name: str, expected: str) -> None:
    assert language_for_path(name) == expected
