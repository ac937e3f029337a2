"""Cursor-anchored diagram block extraction.

Two locators share one contract: given a document and a cursor, return the
inner text of a diagram block or ``None``. :class:`BlockExtractor` tries them
in order and the first non-empty answer wins.

The locators intentionally differ in reach. The structural locator returns the
block containing the cursor or else the nearest one starting above it; the
scanning locator only ever walks upward from the cursor for an opening fence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

from ..editor.document_model import CursorPosition, Document
from ..editor.syntax.markdown import FenceSyntax, build_parser
from .errors import NoBlockError

__all__ = [
    "BlockSpan",
    "BlockLocator",
    "StructuralLocator",
    "ScanningLocator",
    "BlockExtractor",
    "DEFAULT_STRUCTURAL_LANGUAGES",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_STRUCTURAL_LANGUAGES: tuple[str, ...] = ("markdown", "quarto", "rmd", "mdx")


@dataclass(slots=True, frozen=True)
class BlockSpan:
    """0-based line indexes of a fenced block's opening and closing lines."""

    start: int
    end: int

    def inner(self, lines: Sequence[str]) -> str:
        return "\n".join(lines[self.start + 1 : self.end])


class BlockLocator(Protocol):
    """Strategy returning a diagram block's inner text, or ``None``."""

    name: str

    def locate(self, document: Document, cursor: CursorPosition) -> Optional[str]:  # pragma: no cover
        ...


class StructuralLocator:
    """Locate diagram fences through the markdown-it token stream."""

    name = "structural"

    def __init__(
        self,
        syntax: FenceSyntax | None = None,
        *,
        languages: Iterable[str] = DEFAULT_STRUCTURAL_LANGUAGES,
    ) -> None:
        self._syntax = syntax or FenceSyntax()
        self._languages = frozenset(language.lower() for language in languages)

    def supports(self, document: Document) -> bool:
        return document.language.lower() in self._languages

    def spans(self, document: Document) -> list[BlockSpan]:
        """Diagram fences of ``document`` in source order."""

        lines = document.lines
        found: list[BlockSpan] = []
        for token in build_parser().parse(document.text):
            if token.type != "fence" or token.map is None:
                continue
            if token.info.strip() != self._syntax.language:
                continue
            start, stop = token.map
            end = stop - 1
            # markdown-it accepts indented, tilde and unterminated fences; the
            # shared syntax does not.
            if end <= start or end >= len(lines):
                continue
            if not self._syntax.is_opening(lines[start]) or not self._syntax.is_closing(lines[end]):
                continue
            found.append(BlockSpan(start=start, end=end))
        return found

    def locate(self, document: Document, cursor: CursorPosition) -> Optional[str]:
        if not self.supports(document):
            return None
        index = cursor.clamp(document.lines) - 1
        chosen: BlockSpan | None = None
        for span in self.spans(document):
            if span.start > index:
                break
            # Blocks never overlap, so the last one starting at or above the
            # cursor either contains it or is the nearest preceding block.
            chosen = span
        if chosen is None:
            return None
        return chosen.inner(document.lines)


class ScanningLocator:
    """Line-scanning fallback usable for any language."""

    name = "scanning"

    def __init__(self, syntax: FenceSyntax | None = None) -> None:
        self._syntax = syntax or FenceSyntax()

    def locate(self, document: Document, cursor: CursorPosition) -> Optional[str]:
        lines = document.lines
        if not lines:
            return None
        index = cursor.clamp(lines) - 1
        start = self._find_opening(lines, index)
        if start is None:
            return None
        end = self._find_closing(lines, start)
        if end is None:
            return None
        return BlockSpan(start=start, end=end).inner(lines)

    def _find_opening(self, lines: Sequence[str], index: int) -> Optional[int]:
        for candidate in range(index, -1, -1):
            if self._syntax.is_opening(lines[candidate]):
                return candidate
        return None

    def _find_closing(self, lines: Sequence[str], start: int) -> Optional[int]:
        for candidate in range(start + 1, len(lines)):
            if self._syntax.is_closing(lines[candidate]):
                return candidate
        return None


class BlockExtractor:
    """Compose locators with first-success-wins semantics."""

    def __init__(self, locators: Sequence[BlockLocator] | None = None, *, syntax: FenceSyntax | None = None) -> None:
        if locators is None:
            shared = syntax or FenceSyntax()
            locators = (StructuralLocator(shared), ScanningLocator(shared))
        self._locators = tuple(locators)

    @property
    def locators(self) -> tuple[BlockLocator, ...]:
        return self._locators

    def extract(self, document: Document, cursor: CursorPosition) -> str:
        """Return the diagram block text for ``cursor`` or raise :class:`NoBlockError`."""

        for locator in self._locators:
            try:
                text = locator.locate(document, cursor)
            except Exception:  # pragma: no cover - parser bugs fall through to the next locator
                LOGGER.debug("Locator %s failed", getattr(locator, "name", locator), exc_info=True)
                continue
            if text:
                LOGGER.debug(
                    "Extracted %d chars via %s locator at line %d",
                    len(text),
                    getattr(locator, "name", "?"),
                    cursor.line,
                )
                return text
        raise NoBlockError(details={"line": cursor.line, "document_id": document.document_id})
