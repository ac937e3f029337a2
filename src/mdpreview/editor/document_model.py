"""Dataclasses describing editor document snapshots consumed by the preview."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Protocol, Sequence

__all__ = [
    "DocumentKind",
    "Document",
    "CursorPosition",
    "EditorSnapshot",
    "EditorSource",
    "PROSE_LANGUAGE",
    "DEFAULT_DIAGRAM_SUFFIXES",
    "language_for_path",
]

PROSE_LANGUAGE = "markdown"
DEFAULT_DIAGRAM_SUFFIXES: tuple[str, ...] = (".mmd", ".mermaid")
_SUFFIX_LANGUAGES = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".qmd": "quarto",
    ".rmd": "rmd",
    ".mdx": "mdx",
    ".mmd": "mermaid",
    ".mermaid": "mermaid",
}


class DocumentKind(Enum):
    """How the resolver should materialize a document for the preview."""

    PROSE = "prose"
    STANDALONE_DIAGRAM = "standalone-diagram"
    OTHER = "other"


@dataclass(slots=True, frozen=True)
class Document:
    """Immutable snapshot of a document as seen by the preview pipeline."""

    lines: tuple[str, ...] = ()
    language: str = PROSE_LANGUAGE
    path: Path | None = None
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_text(
        cls,
        text: str,
        *,
        language: str = PROSE_LANGUAGE,
        path: Path | str | None = None,
        document_id: str | None = None,
    ) -> "Document":
        resolved = Path(path).expanduser() if path is not None else None
        kwargs = {"document_id": document_id} if document_id else {}
        return cls(lines=_split_lines(text), language=language, path=resolved, **kwargs)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def origin(self) -> str:
        """Stable identity used to derive the document's workspace."""

        if self.path is not None:
            return str(self.path.expanduser().resolve())
        return f"untitled:{self.document_id}"

    def kind(
        self,
        *,
        diagram_suffixes: Iterable[str] = DEFAULT_DIAGRAM_SUFFIXES,
        prose_language: str = PROSE_LANGUAGE,
    ) -> DocumentKind:
        """Classify the document.

        Prose is decided by the declared language; standalone diagrams by the
        file-name suffix, so a ``.mmd`` file is a diagram whatever its language.
        """

        if self.language == prose_language:
            return DocumentKind.PROSE
        if self.path is not None and self.path.suffix.lower() in {s.lower() for s in diagram_suffixes}:
            return DocumentKind.STANDALONE_DIAGRAM
        return DocumentKind.OTHER


@dataclass(slots=True, frozen=True)
class CursorPosition:
    """1-based cursor line inside a :class:`Document`."""

    line: int = 1

    def __post_init__(self) -> None:
        if self.line < 1:
            raise ValueError(f"Cursor line must be >= 1, got {self.line}")

    def clamp(self, lines: Sequence[str]) -> int:
        """Return the cursor line clamped into ``lines`` (at least 1)."""

        return max(1, min(self.line, len(lines) or 1))


@dataclass(slots=True, frozen=True)
class EditorSnapshot:
    document: Document
    cursor: CursorPosition = field(default_factory=CursorPosition)


class EditorSource(Protocol):
    """Editing environment handle the preview pulls fresh snapshots from."""

    def snapshot(self) -> EditorSnapshot:  # pragma: no cover - protocol
        ...


def _split_lines(text: str) -> tuple[str, ...]:
    # Same line boundaries markdown-it uses; a final newline does not open a new line.
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    if not normalized:
        return ()
    if normalized.endswith("\n"):
        normalized = normalized[:-1]
    return tuple(normalized.split("\n"))


def language_for_path(path: Path | str | None, default: str = "text") -> str:
    """Guess a document language from its file suffix."""

    if path is None:
        return default
    return _SUFFIX_LANGUAGES.get(Path(path).suffix.lower(), default)
