"""Tests for cursor-anchored diagram block extraction."""

from __future__ import annotations

import pytest

from mdpreview.editor.document_model import CursorPosition, Document
from mdpreview.preview.blocks import BlockExtractor, ScanningLocator, StructuralLocator
from mdpreview.preview.errors import NoBlockError

# The diagram fence spans lines 5-9.
SINGLE_BLOCK = "\n".join(
    [
        "# Title",
        "",
        "Some intro text.",
        "",
        "```mermaid",
        "graph TD",
        "  A --> B",
        "  B --> C",
        "```",
        "",
        "More text.",
        "Closing words.",
    ]
)
INNER = "graph TD\n  A --> B\n  B --> C"


def _document(text: str = SINGLE_BLOCK, language: str = "quarto") -> Document:
    return Document.from_text(text, language=language)


@pytest.mark.parametrize("language", ["quarto", "python"])
def test_extract_inside_block_returns_inner_lines(language: str) -> None:
    extractor = BlockExtractor()

    assert extractor.extract(_document(language=language), CursorPosition(7)) == INNER


@pytest.mark.parametrize("language", ["quarto", "python"])
def test_extract_below_block_returns_nearest_preceding_block(language: str) -> None:
    extractor = BlockExtractor()

    assert extractor.extract(_document(language=language), CursorPosition(12)) == INNER


@pytest.mark.parametrize("language", ["quarto", "python"])
def test_extract_above_any_block_fails(language: str) -> None:
    extractor = BlockExtractor()

    with pytest.raises(NoBlockError) as excinfo:
        extractor.extract(_document(language=language), CursorPosition(2))

    assert excinfo.value.details["line"] == 2


def test_structural_locator_picks_block_containing_cursor_among_several() -> None:
    text = "```mermaid\nfirst\n```\n\ntext\n\n```mermaid\nsecond\n```\n\ntail"
    locator = StructuralLocator()
    document = _document(text)

    assert locator.locate(document, CursorPosition(2)) == "first"
    assert locator.locate(document, CursorPosition(5)) == "first"
    assert locator.locate(document, CursorPosition(8)) == "second"
    assert locator.locate(document, CursorPosition(11)) == "second"


def test_structural_locator_only_handles_configured_languages() -> None:
    locator = StructuralLocator(languages=("quarto",))

    assert locator.locate(_document(language="python"), CursorPosition(7)) is None
    assert locator.locate(_document(language="quarto"), CursorPosition(7)) == INNER


def test_structural_locator_ignores_fences_nested_in_other_code_blocks() -> None:
    text = "~~~text\n```mermaid\nfake\n```\n~~~\nafter"
    document = _document(text)

    assert StructuralLocator().locate(document, CursorPosition(3)) is None
    # The line scanner has no notion of nesting and still finds it.
    assert ScanningLocator().locate(document, CursorPosition(3)) == "fake"


def test_scanning_locator_requires_closing_fence() -> None:
    document = _document("```mermaid\ngraph TD\n  A --> B", language="python")

    assert ScanningLocator().locate(document, CursorPosition(2)) is None


def test_empty_block_counts_as_no_result() -> None:
    document = _document("intro\n```mermaid\n```\n", language="python")

    with pytest.raises(NoBlockError):
        BlockExtractor().extract(document, CursorPosition(2))


def test_inner_text_is_returned_verbatim() -> None:
    body = "  graph LR\n\n\tX-->Y  "
    document = _document(f"```mermaid\n{body}\n```", language="python")

    assert BlockExtractor().extract(document, CursorPosition(2)) == body


def test_first_successful_locator_wins() -> None:
    class _Fixed:
        name = "fixed"

        def __init__(self, answer: str | None) -> None:
            self.answer = answer
            self.calls = 0

        def locate(self, document: Document, cursor: CursorPosition) -> str | None:
            self.calls += 1
            return self.answer

    empty, winner, never = _Fixed(""), _Fixed("from-second"), _Fixed("from-third")
    extractor = BlockExtractor((empty, winner, never))

    assert extractor.extract(_document(), CursorPosition(1)) == "from-second"
    assert (empty.calls, winner.calls, never.calls) == (1, 1, 0)
