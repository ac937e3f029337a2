"""Cursor -> heading anchor synchronization."""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from ..editor.document_model import CursorPosition, Document
from ..editor.syntax.markdown import find_heading_above

__all__ = ["ScrollTracker", "SCROLL_EVENT"]

LOGGER = logging.getLogger(__name__)
SCROLL_EVENT = "scroll"

EventEmitter = Callable[[str, str], None]


class ScrollTracker:
    """Emit a ``scroll`` event whenever the nearest heading above the cursor changes.

    Runs on every cursor move without debouncing. ``None`` (no heading above
    the cursor) is a tracked anchor too, so both gaining and losing a heading
    are transitions; losing one sends an empty ``headingId``.
    """

    def __init__(self, emit: EventEmitter | None = None, *, enabled: bool = True) -> None:
        self._emit = emit
        self._enabled = enabled
        self._anchor: Optional[str] = None
        self.emitted = 0

    @property
    def anchor(self) -> Optional[str]:
        return self._anchor

    @property
    def enabled(self) -> bool:
        return self._enabled and self._emit is not None

    def update(self, document: Document, cursor: CursorPosition) -> bool:
        """Recompute the anchor for ``cursor``; return ``True`` if an event went out."""

        emit = self._emit
        if not self._enabled or emit is None:
            return False
        slug = find_heading_above(document.lines, cursor.clamp(document.lines))
        if slug == self._anchor:
            return False
        self._anchor = slug
        payload = json.dumps({"headingId": slug or ""})
        emit(SCROLL_EVENT, payload)
        self.emitted += 1
        LOGGER.debug("Scroll anchor -> %r", slug)
        return True

    def reset(self) -> None:
        self._anchor = None
