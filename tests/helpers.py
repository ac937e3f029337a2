"""Shared test helpers and stub classes.

Import from here instead of duplicating fakes in individual test files:

    from tests.helpers import FakeRenderer, FakeServer, StaticSource
"""

from __future__ import annotations

import subprocess
import uuid
from pathlib import Path
from typing import Any, Callable, Mapping

from mdpreview.editor.document_model import CursorPosition, Document, EditorSnapshot
from mdpreview.preview.errors import ExternalToolUnavailable, ServerStartError
from mdpreview.preview.renderer import RenderFailure, RenderOutcome, RenderSuccess


class StaticSource:
    """In-memory editor source whose document identity never changes."""

    def __init__(
        self,
        text: str,
        *,
        language: str = "markdown",
        path: Path | str | None = None,
        line: int = 1,
    ) -> None:
        self.text = text
        self.language = language
        self.path = path
        self.line = line
        self.document_id = uuid.uuid4().hex

    def snapshot(self) -> EditorSnapshot:
        document = Document.from_text(
            self.text, language=self.language, path=self.path, document_id=self.document_id
        )
        return EditorSnapshot(document=document, cursor=CursorPosition(self.line))


class FakeRenderer:
    """Renderer double: ``outputs`` maps diagram source to SVG, others fail."""

    def __init__(self, outputs: Mapping[str, str] | None = None, *, available: bool = True) -> None:
        self.outputs = dict(outputs or {})
        self.available = available
        self.calls: list[str] = []

    def is_available(self) -> bool:
        return self.available

    def ensure_available(self) -> None:
        if not self.available:
            raise ExternalToolUnavailable(message="fake renderer unavailable", command="fake")

    def render(self, source: str) -> RenderOutcome:
        self.calls.append(source)
        markup = self.outputs.get(source)
        if markup is None:
            return RenderFailure(diagnostic=f"cannot render {source!r}")
        return RenderSuccess(markup=markup)


class FakeServer:
    """Records every call the controller makes on the push server."""

    def __init__(self, *, fail_start: bool = False, clients: int = 0, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.fail_start = fail_start
        self.clients = clients
        self.started = False
        self.stopped = False
        self.targets: list[tuple[Path, Path]] = []
        self.reloads: list[str] = []
        self.events: list[tuple[str, str]] = []

    def start(self) -> "FakeServer":
        if self.fail_start:
            raise ServerStartError(port=int(self.kwargs.get("port", 0)))
        self.started = True
        return self

    def stop(self) -> None:
        self.stopped = True

    def update_target(self, root: Path, default_index: Path) -> None:
        self.targets.append((Path(root), Path(default_index)))

    def reload(self, name: str) -> int:
        self.reloads.append(name)
        return self.clients

    def send_event(self, name: str, payload: str) -> int:
        self.events.append((name, payload))
        return self.clients

    def connected_client_count(self) -> int:
        return self.clients


class ServerFactory:
    """Callable handed to the controller; remembers the servers it built."""

    def __init__(self, **server_kwargs: Any) -> None:
        self.server_kwargs = server_kwargs
        self.servers: list[FakeServer] = []

    def __call__(self, **kwargs: Any) -> FakeServer:
        server = FakeServer(**self.server_kwargs, **kwargs)
        self.servers.append(server)
        return server

    @property
    def last(self) -> FakeServer:
        return self.servers[-1]


def completed(stdout: str = "", *, returncode: int = 0, stderr: str = "") -> Callable[..., Any]:
    """Build a ``subprocess.run`` stand-in returning a fixed result."""

    calls: list[dict[str, Any]] = []

    def _run(args: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append({"args": args, **kwargs})
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)

    _run.calls = calls  # type: ignore[attr-defined]
    return _run
