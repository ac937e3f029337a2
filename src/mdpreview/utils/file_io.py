"""File IO helpers for documents and preview artifacts."""

from __future__ import annotations

import codecs
import hashlib
import locale
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "FileSignature",
    "read_text",
    "write_text",
    "snapshot_file",
    "file_has_changed",
    "compute_text_digest",
    "origin_digest",
]

_BOM_MAP: dict[bytes, str] = {
    codecs.BOM_UTF8: "utf-8-sig",
    codecs.BOM_UTF16_LE: "utf-16-le",
    codecs.BOM_UTF16_BE: "utf-16-be",
}


@dataclass(slots=True, frozen=True)
class FileSignature:
    """Fingerprint of a file on disk used by the headless watcher."""

    path: Path
    digest: str
    size: int
    modified_at: float


def read_text(path: Path | str, *, encoding: str | None = None) -> str:
    """Read ``path`` with BOM/encoding detection and ``\\n`` newlines."""

    raw = Path(path).read_bytes()
    text = raw.decode(encoding or _detect_encoding(raw))
    if text.startswith("\ufeff"):
        text = text[1:]
    if "\r" in text:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text


def write_text(path: Path | str, content: str, *, encoding: str = "utf-8") -> Path:
    """Replace ``path`` with ``content`` atomically.

    The content is written to a sibling temp file and moved over the target,
    so a reader polling the artifact never observes a half-written file.
    """

    target = Path(path)
    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def snapshot_file(path: Path | str) -> FileSignature:
    """Compute a :class:`FileSignature` for ``path``."""

    target = Path(path)
    data = target.read_bytes()
    stat = target.stat()
    return FileSignature(
        path=target,
        digest=hashlib.sha256(data).hexdigest(),
        size=stat.st_size,
        modified_at=stat.st_mtime,
    )


def file_has_changed(signature: FileSignature) -> bool:
    """Return ``True`` if the file behind ``signature`` differs on disk."""

    try:
        stat = signature.path.stat()
    except FileNotFoundError:
        return True
    if stat.st_mtime == signature.modified_at and stat.st_size == signature.size:
        return False
    try:
        current = hashlib.sha256(signature.path.read_bytes()).hexdigest()
    except FileNotFoundError:
        return True
    return current != signature.digest


def compute_text_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def origin_digest(origin: str, *, length: int = 16) -> str:
    """Stable short digest used to name per-document workspace directories."""

    return compute_text_digest(origin)[:length]


def _detect_encoding(raw: bytes) -> str:
    for bom, encoding in _BOM_MAP.items():
        if raw.startswith(bom):
            return encoding
    preferred = locale.getpreferredencoding(False) or "utf-8"
    for candidate in dict.fromkeys(("utf-8", preferred, "latin-1")):
        try:
            raw.decode(candidate)
        except UnicodeDecodeError:
            continue
        return candidate
    return "utf-8"
