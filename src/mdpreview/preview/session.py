"""State owned by one running preview of one document."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..editor.document_model import EditorSnapshot, EditorSource
from .coordinator import ChangeCoordinator, LastContentCache
from .resolver import ContentResolver
from .scroll import ScrollTracker
from .workspace import PreviewWorkspace

__all__ = ["PreviewSession"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PreviewSession:
    """Workspace, caches, debouncer and scroll anchor for a single document.

    Built by the controller on start and closed on stop or retarget. Nothing
    here is shared with another session.
    """

    source: EditorSource
    document_id: str
    workspace: PreviewWorkspace
    resolver: ContentResolver
    coordinator: ChangeCoordinator
    scroll: ScrollTracker
    closed: bool = False

    @property
    def cache(self) -> LastContentCache:
        return self.coordinator.cache

    def snapshot(self) -> EditorSnapshot:
        return self.source.snapshot()

    def resolve(self) -> str:
        """Resolve the latest editor snapshot into preview text."""

        snapshot = self.source.snapshot()
        return self.resolver.resolve(snapshot.document, snapshot.cursor)

    def sync_scroll(self) -> bool:
        if self.closed:
            return False
        snapshot = self.source.snapshot()
        return self.scroll.update(snapshot.document, snapshot.cursor)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.coordinator.close()
        self.scroll.reset()
        LOGGER.debug("Closed preview session for %s", self.document_id)
