"""Decide what text represents "the current preview" for a document."""

from __future__ import annotations

import logging
from typing import Iterable

from ..editor.document_model import (
    DEFAULT_DIAGRAM_SUFFIXES,
    CursorPosition,
    Document,
    DocumentKind,
)
from ..editor.syntax.markdown import FenceSyntax
from .blocks import BlockExtractor
from .errors import NoBlockError, NoContentError
from .splicer import Splicer

__all__ = ["ContentResolver"]

LOGGER = logging.getLogger(__name__)


class ContentResolver:
    """Mode dispatch followed by optional external pre-rendering.

    * prose documents pass through verbatim,
    * standalone diagram files are wrapped in one diagram fence,
    * anything else contributes the diagram block under the cursor.
    """

    def __init__(
        self,
        extractor: BlockExtractor | None = None,
        *,
        syntax: FenceSyntax | None = None,
        splicer: Splicer | None = None,
        diagram_suffixes: Iterable[str] = DEFAULT_DIAGRAM_SUFFIXES,
    ) -> None:
        self._syntax = syntax or FenceSyntax()
        self._extractor = extractor or BlockExtractor(syntax=self._syntax)
        self._splicer = splicer
        self._diagram_suffixes = tuple(diagram_suffixes)

    @property
    def splicer(self) -> Splicer | None:
        return self._splicer

    def kind_of(self, document: Document) -> DocumentKind:
        return document.kind(diagram_suffixes=self._diagram_suffixes)

    def resolve(self, document: Document, cursor: CursorPosition) -> str:
        """Return the preview text or raise :class:`NoContentError`."""

        kind = self.kind_of(document)
        if kind is DocumentKind.PROSE:
            text = document.text
        elif kind is DocumentKind.STANDALONE_DIAGRAM:
            text = self._syntax.wrap(document.text)
        else:
            try:
                block = self._extractor.extract(document, cursor)
            except NoBlockError as exc:
                raise NoContentError(message=exc.message, details=dict(exc.details)) from exc
            text = self._syntax.wrap(block)

        if self._splicer is not None and _renderer_ready(self._splicer):
            text = self._splicer.splice(text)
        return text


def _renderer_ready(splicer: Splicer) -> bool:
    check = getattr(splicer.renderer, "is_available", None)
    return True if check is None else bool(check())
