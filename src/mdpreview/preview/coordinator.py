"""Debounced, idempotent publication of resolved preview content."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterator, MutableMapping, Optional, Protocol

from .errors import PreviewError

__all__ = ["ChangeCoordinator", "LastContentCache", "ContentSink"]

LOGGER = logging.getLogger(__name__)


class ContentSink(Protocol):
    """Where resolved content is written (the preview workspace)."""

    def write_content(self, text: str) -> object:  # pragma: no cover - protocol
        ...


class LastContentCache(MutableMapping[str, str]):
    """Document id -> last content successfully written to the workspace."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._entries[key] = value

    def __delitem__(self, key: str) -> None:
        del self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def is_current(self, document_id: str, text: str) -> bool:
        return self._entries.get(document_id) == text


class ChangeCoordinator:
    """Coalesce bursts of edit events into a single write + notify.

    Every :meth:`schedule` call bumps a generation token and re-arms one timer.
    When the timer fires it proceeds only if its captured token is still the
    latest; older callbacks exit without doing anything.
    """

    def __init__(
        self,
        *,
        document_id: str,
        resolve: Callable[[], str],
        sink: ContentSink,
        cache: LastContentCache | None = None,
        publish: Callable[[], None] | None = None,
        on_error: Callable[[PreviewError], None] | None = None,
        debounce_seconds: float = 0.3,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._document_id = document_id
        self._resolve = resolve
        self._sink = sink
        self._cache = cache if cache is not None else LastContentCache()
        self._publish = publish
        self._on_error = on_error
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._loop = loop
        self._token = 0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._closed = False
        self.writes = 0

    @property
    def token(self) -> int:
        return self._token

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def cache(self) -> LastContentCache:
        return self._cache

    def schedule(self) -> int:
        """Arm (or re-arm) the quiet-interval timer and return the new token."""

        if self._closed:
            return self._token
        self._token += 1
        token = self._token
        if self._handle is not None:
            self._handle.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._debounce_seconds, self._fire, token)
        return token

    def cancel(self) -> None:
        """Drop any pending refresh; a late callback sees a stale token."""

        self._token += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def close(self) -> None:
        self.cancel()
        self._closed = True
        self._cache.pop(self._document_id, None)

    def refresh(self) -> bool:
        """Resolve, and write + publish only when the content changed.

        Raises whatever the resolver or sink raises; the cache is updated only
        after a successful write.
        """

        text = self._resolve()
        if self._cache.is_current(self._document_id, text):
            return False
        self._sink.write_content(text)
        self._cache[self._document_id] = text
        self.writes += 1
        if self._publish is not None:
            self._publish()
        return True

    def _fire(self, token: int) -> None:
        if token != self._token:
            return
        self._handle = None
        if self._closed:
            return
        try:
            self.refresh()
        except PreviewError as exc:
            if exc.recoverable:
                LOGGER.debug("Background refresh skipped: %s", exc)
                return
            LOGGER.error("Background refresh failed: %s", exc)
            if self._on_error is not None:
                self._on_error(exc)
