"""Replace diagram fences with pre-rendered markup, one fence at a time."""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

from ..editor.syntax.markdown import FenceSyntax
from .renderer import RenderOutcome, RenderSuccess

__all__ = ["Splicer", "SpliceStats", "render_block_markup", "BLOCK_ID_PREFIX"]

LOGGER = logging.getLogger(__name__)
_LINE_END = re.compile(r"(?<=\n)")
BLOCK_ID_PREFIX = "mmd-pre-"
# Characters left unescaped by RFC 2396 URI encoding.
_URI_SAFE = "-_.!~*'()"
_EXPAND_BUTTON_SVG = (
    '<svg width="16" height="16" viewBox="0 0 24 24" fill="none">'
    '<path d="M15 3h6v6M9 21H3v-6M21 3l-7 7M3 21l7-7" stroke="currentColor" '
    'stroke-width="2" stroke-linecap="round" stroke-linejoin="round"/>'
    "</svg>"
)


class SupportsRender(Protocol):
    def render(self, source: str) -> RenderOutcome:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class SpliceStats:
    fences: int = 0
    rendered: int = 0
    failed: int = 0
    skipped: int = 0


def render_block_markup(index: int, source: str, markup: str, *, language: str = "mermaid") -> str:
    """Embeddable HTML for one pre-rendered diagram."""

    block_id = f"{BLOCK_ID_PREFIX}{index}"
    encoded = html.escape(quote(source, safe=_URI_SAFE), quote=True)
    return (
        f'<div class="mermaid-block mermaid-rendered" id="{block_id}" '
        f'data-mermaid-source="{encoded}" data-graph="{language}" data-prerendered="true">'
        f'<button class="mermaid-expand-btn" title="Expand diagram" data-expand="{block_id}">'
        f"{_EXPAND_BUTTON_SVG}</button>"
        f'<div class="mermaid-svg-wrap">{markup}</div>'
        "</div>"
    )


class Splicer:
    """Scan text for diagram fences and splice rendered markup in their place.

    Text outside fences is copied through unchanged. A fence whose render
    fails, or whose body is empty, is copied through unchanged as well, so the
    display can fall back to client-side rendering for that fence alone.
    """

    def __init__(self, renderer: SupportsRender, syntax: FenceSyntax | None = None) -> None:
        self._renderer = renderer
        self._syntax = syntax or FenceSyntax()
        self.last_stats = SpliceStats()

    @property
    def renderer(self) -> SupportsRender:
        return self._renderer

    def splice(self, text: str) -> str:
        lines = _split_lines(text)
        out: list[str] = []
        stats = SpliceStats()
        index = 0
        total = len(lines)

        while index < total:
            line = lines[index]
            if not self._syntax.is_opening(line):
                out.append(line)
                index += 1
                continue

            close = self._find_closing(lines, index + 1)
            if close is None:
                # Unterminated fence: everything from here on is left alone.
                out.extend(lines[index:])
                break

            stats.fences += 1
            region = lines[index : close + 1]
            source = _strip_line_break("".join(lines[index + 1 : close]))
            index = close + 1

            if not source:
                stats.skipped += 1
                out.extend(region)
                continue

            outcome = self._renderer.render(source)
            if isinstance(outcome, RenderSuccess):
                stats.rendered += 1
                out.append(render_block_markup(stats.rendered, source, outcome.markup, language=self._syntax.language))
                out.append("\n")
            else:
                stats.failed += 1
                LOGGER.debug("Keeping fence for client-side rendering: %s", outcome.as_error())
                out.extend(region)

        self.last_stats = stats
        if stats.fences:
            LOGGER.debug(
                "Spliced %d/%d diagram fences (%d failed, %d empty)",
                stats.rendered,
                stats.fences,
                stats.failed,
                stats.skipped,
            )
        return "".join(out)

    def _find_closing(self, lines: list[str], start: int) -> int | None:
        for candidate in range(start, len(lines)):
            if self._syntax.is_closing(lines[candidate]):
                return candidate
        return None


def _split_lines(text: str) -> list[str]:
    # Only "\n" ends a line, matching how documents are split into lines.
    return [line for line in _LINE_END.split(text) if line]


def _strip_line_break(value: str) -> str:
    if value.endswith("\r\n"):
        return value[:-2]
    if value.endswith("\n"):
        return value[:-1]
    return value
