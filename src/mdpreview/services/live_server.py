"""Tiny static file server with a Server-Sent Events channel.

Serves one workspace directory to the browser shell and pushes two kinds of
events to every connected display: ``reload`` (an artifact changed) and
arbitrary named events such as ``scroll``.
"""

from __future__ import annotations

import http.server
import json
import logging
import mimetypes
import queue
import threading
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import unquote, urlparse

from ..preview.errors import ServerStartError

__all__ = ["LiveServer", "EVENTS_PATH", "format_event"]

LOGGER = logging.getLogger(__name__)
EVENTS_PATH = "/__mdpreview/events"
_DISCONNECT_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)
_CONTENT_TYPES = {
    ".md": "text/markdown; charset=utf-8",
    ".html": "text/html; charset=utf-8",
    ".svg": "image/svg+xml",
}


def format_event(name: str, payload: str) -> str:
    """Encode one SSE frame; multi-line payloads get one ``data:`` line each."""

    data = "".join(f"data: {line}\n" for line in (payload.splitlines() or [""]))
    return f"event: {name}\n{data}\n"


class _PreviewHTTPServer(http.server.ThreadingHTTPServer):
    daemon_threads = True
    # A second server on the same port must fail instead of sharing it.
    allow_reuse_port = False


class _EventClient:
    def __init__(self) -> None:
        self.frames: "queue.Queue[Optional[str]]" = queue.Queue()


class LiveServer:
    """Static server for a single root + default document, retargetable at runtime."""

    def __init__(
        self,
        *,
        root: Path | str,
        default_index: Path | str,
        host: str = "127.0.0.1",
        port: int = 8421,
        headers: Mapping[str, str] | None = None,
        cors: bool = True,
        keepalive_seconds: float = 15.0,
    ) -> None:
        self._host = host
        self._port = port
        self._headers = dict(headers or {"Cache-Control": "no-cache"})
        self._cors = cors
        self._keepalive = keepalive_seconds
        self._lock = threading.Lock()
        self._target = (Path(root), Path(default_index))
        self._clients: list[_EventClient] = []
        self._httpd: _PreviewHTTPServer | None = None
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._httpd is not None

    @property
    def port(self) -> int:
        """Bound port (differs from the requested one when 0 was requested)."""

        if self._httpd is not None:
            return int(self._httpd.server_address[1])
        return self._port

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self.port}/"

    def start(self) -> "LiveServer":
        if self._httpd is not None:
            return self
        try:
            httpd = _PreviewHTTPServer((self._host, self._port), _make_handler(self))
        except OSError as exc:
            raise ServerStartError(
                message=f"Failed to start preview server: {exc}",
                port=self._port,
                details={"host": self._host},
            ) from exc
        self._httpd = httpd
        self._thread = threading.Thread(
            target=httpd.serve_forever, name="mdpreview-live-server", daemon=True
        )
        self._thread.start()
        LOGGER.info("Preview server listening on %s", self.url)
        return self

    def stop(self) -> None:
        httpd, thread = self._httpd, self._thread
        if httpd is None:
            return
        self._httpd = None
        self._thread = None
        with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for client in clients:
            client.frames.put(None)
        httpd.shutdown()
        httpd.server_close()
        if thread is not None:
            thread.join(timeout=5)
        LOGGER.info("Preview server on port %s stopped", self._port)

    # ------------------------------------------------------------------
    # Target + notifications
    # ------------------------------------------------------------------
    def target(self) -> tuple[Path, Path]:
        with self._lock:
            return self._target

    def update_target(self, root: Path | str, default_index: Path | str) -> None:
        """Swap the served root and default document as one unit."""

        with self._lock:
            self._target = (Path(root), Path(default_index))
        LOGGER.debug("Preview server retargeted to %s", root)

    def reload(self, name: str) -> int:
        return self.send_event("reload", json.dumps({"path": name}))

    def send_event(self, name: str, payload: str) -> int:
        """Broadcast an event; returns the number of displays it was queued for."""

        frame = format_event(name, payload)
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            client.frames.put(frame)
        return len(clients)

    def connected_client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    # ------------------------------------------------------------------
    # Handler callbacks
    # ------------------------------------------------------------------
    def _register(self) -> _EventClient:
        client = _EventClient()
        with self._lock:
            self._clients.append(client)
        return client

    def _unregister(self, client: _EventClient) -> None:
        with self._lock:
            if client in self._clients:
                self._clients.remove(client)

    def _resolve_request(self, raw_path: str) -> Optional[Path]:
        root, index = self.target()
        path = unquote(urlparse(raw_path).path)
        if path in ("", "/"):
            return index if index.is_file() else None
        root = root.resolve()
        candidate = (root / path.lstrip("/")).resolve()
        if not candidate.is_relative_to(root) or not candidate.is_file():
            return None
        return candidate


def _make_handler(server: LiveServer) -> type[http.server.BaseHTTPRequestHandler]:
    class Handler(http.server.BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def do_GET(self) -> None:  # noqa: N802 - http.server naming
            if urlparse(self.path).path == EVENTS_PATH:
                self._stream_events()
                return
            target = server._resolve_request(self.path)
            if target is None:
                self._respond(404, "text/plain; charset=utf-8", b"Not found")
                return
            try:
                body = target.read_bytes()
            except OSError:
                self._respond(404, "text/plain; charset=utf-8", b"Not found")
                return
            self._respond(200, _content_type(target), body)

        def _respond(self, code: int, content_type: str, body: bytes) -> None:
            self.send_response(code)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self._common_headers()
            self.end_headers()
            self.wfile.write(body)

        def _common_headers(self) -> None:
            for key, value in server._headers.items():
                self.send_header(key, value)
            if server._cors:
                self.send_header("Access-Control-Allow-Origin", "*")

        def _stream_events(self) -> None:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Connection", "keep-alive")
            self._common_headers()
            self.end_headers()
            client = server._register()
            try:
                self.wfile.write(b": connected\n\n")
                self.wfile.flush()
                while True:
                    try:
                        frame = client.frames.get(timeout=server._keepalive)
                    except queue.Empty:
                        frame = ": ping\n\n"
                    if frame is None:
                        break
                    self.wfile.write(frame.encode("utf-8"))
                    self.wfile.flush()
            except _DISCONNECT_ERRORS:
                LOGGER.debug("Preview display disconnected")
            finally:
                server._unregister(client)
                self.close_connection = True

        def log_message(self, format: str, *args: object) -> None:  # noqa: A002
            LOGGER.debug("%s - %s", self.address_string(), format % args)

    return Handler


def _content_type(path: Path) -> str:
    known = _CONTENT_TYPES.get(path.suffix.lower())
    if known:
        return known
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"
