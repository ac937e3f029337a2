"""Markdown syntax helpers shared by the extractor, splicer and scroll tracker."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from markdown_it import MarkdownIt

__all__ = [
    "FENCE_MARKER",
    "FenceSyntax",
    "slugify",
    "heading_title",
    "find_heading_above",
    "build_parser",
]

FENCE_MARKER = "```"
_HEADING_PATTERN = re.compile(r"^#{1,6}\s+(?P<title>.+)")
_WHITESPACE_RUN = re.compile(r"\s+")
# ASCII-only ``\w`` keeps slugs identical to the browser-side anchor ids.
_NON_SLUG_CHARS = re.compile(r"[^\w-]", re.ASCII)


def slugify(value: str) -> str:
    """Normalize heading text into an anchor id.

    ``"  Getting   Started! "`` becomes ``getting-started``.
    """

    collapsed = _WHITESPACE_RUN.sub("-", value.strip().lower())
    return _NON_SLUG_CHARS.sub("", collapsed)


def heading_title(line: str) -> Optional[str]:
    """Return the heading text if ``line`` is an ATX heading."""

    match = _HEADING_PATTERN.match(line)
    if match is None:
        return None
    return match.group("title")


def find_heading_above(lines: Sequence[str], line: int) -> Optional[str]:
    """Slug of the nearest heading at or above 1-based ``line``, if any."""

    for index in range(min(line, len(lines)) - 1, -1, -1):
        title = heading_title(lines[index])
        if title is not None:
            return slugify(title)
    return None


@dataclass(slots=True, frozen=True)
class FenceSyntax:
    """Delimiter rules for diagram fences.

    An opening line is the fence marker immediately followed by the language
    tag and optional trailing whitespace; a closing line is the bare marker
    with optional trailing whitespace. Both the structural and scanning
    locators and the splicer go through this class.
    """

    language: str = "mermaid"
    marker: str = FENCE_MARKER
    _opening: re.Pattern[str] = field(init=False, repr=False, compare=False)
    _closing: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        marker = re.escape(self.marker)
        object.__setattr__(
            self, "_opening", re.compile(rf"{marker}{re.escape(self.language)}[ \t]*\r?\n?")
        )
        object.__setattr__(self, "_closing", re.compile(rf"{marker}[ \t]*\r?\n?"))

    def is_opening(self, line: str) -> bool:
        return self._opening.fullmatch(line) is not None

    def is_closing(self, line: str) -> bool:
        return self._closing.fullmatch(line) is not None

    def wrap(self, body: str) -> str:
        """Wrap ``body`` in exactly one opening/closing fence pair."""

        return f"{self.marker}{self.language}\n{body}\n{self.marker}\n"


_PARSER: Optional[MarkdownIt] = None


def build_parser() -> MarkdownIt:
    """Return the shared CommonMark parser used for structural lookups."""

    global _PARSER
    if _PARSER is None:
        _PARSER = MarkdownIt("commonmark")
    return _PARSER
