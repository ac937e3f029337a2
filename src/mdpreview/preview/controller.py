"""Command surface of the preview: start, refresh, stop and editor events."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from ..editor.document_model import EditorSource
from ..editor.syntax.markdown import FenceSyntax
from ..services.settings import Settings
from .blocks import BlockExtractor, ScanningLocator, StructuralLocator
from .coordinator import ChangeCoordinator, LastContentCache
from .errors import ExternalToolUnavailable, NoContentError, PreviewError
from .renderer import ExternalRenderer
from .resolver import ContentResolver
from .scroll import ScrollTracker
from .session import PreviewSession
from .splicer import Splicer
from .workspace import PreviewWorkspace, workspace_for

__all__ = ["EditorEvent", "PreviewController", "PreviewServer", "BROWSER_OPEN_DELAY"]

LOGGER = logging.getLogger(__name__)
BROWSER_OPEN_DELAY = 0.2


class EditorEvent(str, Enum):
    """Editing-environment event categories the controller reacts to."""

    TEXT_CHANGED = "text-changed"
    TEXT_CHANGED_INSERT = "text-changed-insert"
    INSERT_LEFT = "insert-left"
    WRITE_COMPLETED = "write-completed"
    CURSOR_MOVED = "cursor-moved"


class PreviewServer(Protocol):
    """Interface of the push server the controller drives."""

    def start(self) -> Any:  # pragma: no cover - protocol
        ...

    def stop(self) -> None:  # pragma: no cover - protocol
        ...

    def update_target(self, root: Path, default_index: Path) -> None:  # pragma: no cover
        ...

    def reload(self, name: str) -> Any:  # pragma: no cover - protocol
        ...

    def send_event(self, name: str, payload: str) -> Any:  # pragma: no cover - protocol
        ...

    def connected_client_count(self) -> int:  # pragma: no cover - protocol
        ...


ServerFactory = Callable[..., PreviewServer]


def _default_server_factory(**kwargs: Any) -> PreviewServer:
    from ..services.live_server import LiveServer

    return LiveServer(**kwargs)


class PreviewController:
    """Owns the server binding and the active :class:`PreviewSession`.

    ``start`` is idempotent: with a server already running it retargets to the
    new document instead of starting a second one. ``stop`` when idle does
    nothing. Failures from ``start`` and ``refresh`` propagate to the caller;
    debounced background refreshes handle their own.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        server_factory: ServerFactory | None = None,
        browser_opener: Callable[[str], Any] | None = None,
        renderer: ExternalRenderer | None = None,
        notifier: Callable[[str], None] | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._loop = loop
        self._server_factory = server_factory or _default_server_factory
        self._browser_opener = browser_opener or webbrowser.open
        self._notify = notifier or LOGGER.info
        self._syntax = FenceSyntax(language=self._settings.diagram_language)
        self._renderer = renderer
        if self._renderer is None and self._settings.external_renderer_enabled:
            self._renderer = ExternalRenderer(
                self._settings.renderer_command,
                timeout=self._settings.renderer_timeout,
                warn=self._notify,
            )
        self._server: Optional[PreviewServer] = None
        self._session: Optional[PreviewSession] = None
        self._error_listeners: list[Callable[[PreviewError], None]] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def session(self) -> Optional[PreviewSession]:
        return self._session

    @property
    def server(self) -> Optional[PreviewServer]:
        return self._server

    @property
    def renderer(self) -> Optional[ExternalRenderer]:
        return self._renderer

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._session is not None

    def add_error_listener(self, listener: Callable[[PreviewError], None]) -> None:
        """Receive non-recoverable failures raised by background refreshes."""

        self._error_listeners.append(listener)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def start(self, source: EditorSource) -> PreviewSession:
        """Preview ``source``; retarget the running server if there is one.

        The new session only replaces the previous one once the content was
        written and the server accepted it, so a failing start leaves any
        running preview untouched.
        """

        settings = self._settings
        snapshot = source.snapshot()
        resolver = self._build_resolver()
        text = resolver.resolve(snapshot.document, snapshot.cursor)

        workspace = PreviewWorkspace(
            workspace_for(snapshot.document, base_dir=settings.workspace_dir),
            index_name=settings.index_name,
            content_name=settings.content_name,
        )
        workspace.write_index(overwrite=settings.overwrite_index_on_start)
        workspace.write_content(text)

        if self._server is None:
            server = self._server_factory(
                root=workspace.directory,
                default_index=workspace.index_path,
                host=settings.host,
                port=settings.port,
                headers={"Cache-Control": "no-cache"},
                cors=True,
            )
            server.start()
            self._server = server
            if settings.open_browser:
                self._schedule_browser()
        else:
            self._retarget(workspace)

        session = self._build_session(source, snapshot.document.document_id, workspace, resolver)
        session.cache[session.document_id] = text
        previous, self._session = self._session, session
        if previous is not None:
            previous.close()
        LOGGER.info("Previewing %s from %s", snapshot.document.origin, workspace.directory)
        self._check_renderer()
        if settings.scroll_sync:
            session.sync_scroll()
        return session

    def refresh(self) -> bool:
        """Resolve and publish now; returns whether anything was written."""

        session = self._session
        if session is None:
            raise NoContentError(message="Markdown preview is not running")
        session.coordinator.cancel()
        changed = session.coordinator.refresh()
        if self._settings.notify_on_refresh:
            self._notify("Markdown preview updated" if changed else "Markdown preview: no changes detected")
        return changed

    def stop(self) -> None:
        session, server = self._session, self._server
        self._session = None
        self._server = None
        if session is not None:
            session.close()
        if server is not None:
            try:
                server.stop()
            except Exception:  # pragma: no cover - best effort teardown
                LOGGER.warning("Preview server did not stop cleanly", exc_info=True)
            LOGGER.info("Markdown preview stopped")

    # ------------------------------------------------------------------
    # Editor events
    # ------------------------------------------------------------------
    def handle_event(self, event: EditorEvent | str) -> bool:
        """Route an editor event; returns ``True`` when it was acted on."""

        session = self._session
        if session is None:
            return False
        event = EditorEvent(event)
        if event is EditorEvent.CURSOR_MOVED:
            return self.handle_cursor_moved()
        settings = self._settings
        if not settings.auto_refresh or event.value not in settings.auto_refresh_events:
            return False
        session.coordinator.schedule()
        return True

    def handle_cursor_moved(self) -> bool:
        session = self._session
        if session is None:
            return False
        return session.sync_scroll()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _build_resolver(self) -> ContentResolver:
        settings = self._settings
        extractor = BlockExtractor(
            (
                StructuralLocator(self._syntax, languages=settings.structural_languages),
                ScanningLocator(self._syntax),
            )
        )
        splicer = Splicer(self._renderer, self._syntax) if self._renderer is not None else None
        return ContentResolver(
            extractor,
            syntax=self._syntax,
            splicer=splicer,
            diagram_suffixes=settings.diagram_suffixes,
        )

    def _build_session(
        self,
        source: EditorSource,
        document_id: str,
        workspace: PreviewWorkspace,
        resolver: ContentResolver,
    ) -> PreviewSession:
        settings = self._settings
        content_name = settings.content_name

        def resolve() -> str:
            snapshot = source.snapshot()
            return resolver.resolve(snapshot.document, snapshot.cursor)

        coordinator = ChangeCoordinator(
            document_id=document_id,
            resolve=resolve,
            sink=workspace,
            cache=LastContentCache(),
            publish=lambda: self._publish(lambda server: server.reload(content_name)),
            on_error=self._report_error,
            debounce_seconds=settings.debounce_seconds,
            loop=self._loop,
        )
        tracker = ScrollTracker(
            lambda name, payload: self._publish(lambda server: server.send_event(name, payload)),
            enabled=settings.scroll_sync,
        )
        return PreviewSession(
            source=source,
            document_id=document_id,
            workspace=workspace,
            resolver=resolver,
            coordinator=coordinator,
            scroll=tracker,
        )

    def _retarget(self, workspace: PreviewWorkspace) -> None:
        server = self._server
        if server is None:
            return
        try:
            server.update_target(workspace.directory, workspace.index_path)
        except Exception:
            LOGGER.warning("Failed to retarget preview server", exc_info=True)
        content_name = self._settings.content_name
        self._publish(lambda target: target.reload(content_name))
        if self._settings.open_browser and self._connected_clients() == 0:
            self._schedule_browser()

    def _publish(self, notify: Callable[[PreviewServer], Any]) -> None:
        server = self._server
        if server is None:
            return
        try:
            notify(server)
        except Exception:
            LOGGER.warning("Preview server notification failed", exc_info=True)

    def _connected_clients(self) -> int:
        server = self._server
        if server is None:
            return 0
        try:
            return int(server.connected_client_count())
        except Exception:
            LOGGER.debug("Could not query connected displays", exc_info=True)
            return 0

    def _check_renderer(self) -> None:
        renderer = self._renderer
        if renderer is None:
            return
        try:
            renderer.ensure_available()
        except ExternalToolUnavailable as exc:
            # The renderer already warned through the notifier; diagrams fall back to the browser.
            LOGGER.info("External diagram rendering disabled: %s", exc)
            for listener in list(self._error_listeners):
                listener(exc)

    def _report_error(self, error: PreviewError) -> None:
        self._notify(f"Markdown preview: {error}")
        for listener in list(self._error_listeners):
            listener(error)

    def _schedule_browser(self) -> None:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is None:
            self._open_browser()
        else:
            loop.call_later(BROWSER_OPEN_DELAY, self._open_browser)

    def _open_browser(self) -> None:
        url = getattr(self._server, "url", None) or self._settings.server_url()
        try:
            self._browser_opener(url)
        except Exception:
            LOGGER.warning("Unable to open a browser for %s", url, exc_info=True)
