"""Tests for preview content resolution."""

from __future__ import annotations

import pytest

from mdpreview.editor.document_model import CursorPosition, Document, DocumentKind
from mdpreview.preview.errors import NoContentError
from mdpreview.preview.resolver import ContentResolver
from mdpreview.preview.splicer import Splicer
from tests.helpers import FakeRenderer

PROSE = "# Notes\n\n```mermaid\ngraph TD\n  A --> B\n```\n\nDone."


@pytest.mark.parametrize(
    "text",
    [PROSE, "", "no trailing newline", "   indented\n\n\n    lines   "],
)
def test_prose_documents_pass_through_unchanged(text: str) -> None:
    document = Document.from_text(text, language="markdown")

    assert ContentResolver().resolve(document, CursorPosition(1)) == document.text


def test_standalone_diagram_is_wrapped_exactly_once() -> None:
    document = Document.from_text("graph LR\n  X --> Y", language="mermaid", path="flow.mmd")
    resolver = ContentResolver()

    assert resolver.kind_of(document) is DocumentKind.STANDALONE_DIAGRAM
    assert resolver.resolve(document, CursorPosition(1)) == "```mermaid\ngraph LR\n  X --> Y\n```\n"


def test_fragment_documents_contribute_the_block_under_the_cursor() -> None:
    source = '"""Docs."""\n# ```mermaid\n```mermaid\nsequenceDiagram\n  A->>B: hi\n```\nprint("x")'
    document = Document.from_text(source, language="python", path="tool.py")

    resolved = ContentResolver().resolve(document, CursorPosition(5))

    assert resolved == "```mermaid\nsequenceDiagram\n  A->>B: hi\n```\n"


def test_missing_block_becomes_no_content() -> None:
    document = Document.from_text("x = 1\ny = 2", language="python", path="tool.py")

    with pytest.raises(NoContentError) as excinfo:
        ContentResolver().resolve(document, CursorPosition(2))

    assert "mermaid" in str(excinfo.value)
    assert excinfo.value.details["line"] == 2


def test_available_renderer_splices_resolved_content() -> None:
    renderer = FakeRenderer({"graph TD\n  A --> B": "<svg>ok</svg>"})
    resolver = ContentResolver(splicer=Splicer(renderer))
    document = Document.from_text(PROSE, language="markdown")

    resolved = resolver.resolve(document, CursorPosition(1))

    assert "<svg>ok</svg>" in resolved
    assert "```mermaid" not in resolved
    assert resolved.startswith("# Notes\n\n<div ")
    assert resolved.endswith("</div>\n\nDone.")


def test_unavailable_renderer_leaves_content_alone() -> None:
    renderer = FakeRenderer({"graph TD\n  A --> B": "<svg>ok</svg>"}, available=False)
    resolver = ContentResolver(splicer=Splicer(renderer))
    document = Document.from_text(PROSE, language="markdown")

    assert resolver.resolve(document, CursorPosition(1)) == PROSE
    assert renderer.calls == []
