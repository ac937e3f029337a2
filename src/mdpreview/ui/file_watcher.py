"""Headless editing environment: a file on disk watched by polling."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from pathlib import Path
from typing import Callable, Optional

from ..editor.document_model import (
    CursorPosition,
    Document,
    EditorSnapshot,
    language_for_path,
)
from ..utils import file_io
from ..utils.file_io import FileSignature

__all__ = ["FileSource", "FileWatcher"]

LOGGER = logging.getLogger(__name__)


class FileSource:
    """:class:`EditorSource` that re-reads ``path`` on every snapshot.

    The document id is fixed for the lifetime of the source so consecutive
    snapshots are recognised as the same document.
    """

    def __init__(self, path: Path | str, *, language: str | None = None, line: int = 1) -> None:
        self._path = Path(path).expanduser()
        self._language = language or language_for_path(self._path)
        self._cursor = CursorPosition(line)
        self._document_id = uuid.uuid4().hex

    @property
    def path(self) -> Path:
        return self._path

    @property
    def language(self) -> str:
        return self._language

    def move_cursor(self, line: int) -> None:
        self._cursor = CursorPosition(line)

    def snapshot(self) -> EditorSnapshot:
        text = file_io.read_text(self._path)
        document = Document.from_text(
            text,
            language=self._language,
            path=self._path,
            document_id=self._document_id,
        )
        return EditorSnapshot(document=document, cursor=self._cursor)


class FileWatcher:
    """Poll a file's signature and call ``on_change`` when it differs.

    Each detected change maps to one ``write-completed`` editor event.
    """

    def __init__(
        self,
        path: Path | str,
        on_change: Callable[[], None],
        *,
        interval: float = 0.5,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        self._path = Path(path)
        self._on_change = on_change
        self._interval = interval
        self._loop = loop
        self._signature: Optional[FileSignature] = None
        self._task: Optional[asyncio.Task[None]] = None
        self.changes = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def prime(self) -> None:
        """Record the current file state as the baseline for change detection."""

        self._signature = self._snapshot()

    def start(self) -> None:
        if self.running:
            return
        self.prime()
        loop = self._loop or asyncio.get_running_loop()
        self._task = loop.create_task(self._poll())
        LOGGER.debug("Watching %s every %.2fs", self._path, self._interval)

    async def aclose(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def check(self) -> bool:
        """Compare against the last signature once; ``True`` when it changed."""

        signature = self._signature
        if signature is not None and not file_io.file_has_changed(signature):
            return False
        current = self._snapshot()
        if current is None or (signature is not None and current.digest == signature.digest):
            # Missing file, or touched without a content change.
            self._signature = current or signature
            return False
        self._signature = current
        self.changes += 1
        self._on_change()
        return True

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.check()
            except Exception:
                LOGGER.exception("Change handler failed for %s", self._path)

    def _snapshot(self) -> Optional[FileSignature]:
        try:
            return file_io.snapshot_file(self._path)
        except FileNotFoundError:
            return None
