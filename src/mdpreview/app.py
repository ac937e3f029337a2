"""Application bootstrap helpers for the mdpreview CLI and editor."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, cast, get_args, get_origin, get_type_hints

from .preview.controller import EditorEvent, PreviewController
from .preview.errors import PreviewError
from .services.settings import Settings, SettingsStore
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


@dataclass(slots=True)
class QtRuntime:
    """Container returned by :func:`create_qapp`."""

    app: Any
    loop: asyncio.AbstractEventLoop


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging_utils.level_for(debug)
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    logging_utils.install_qt_message_handler()


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def create_qapp() -> QtRuntime:
    """Create a qasync-powered QApplication instance."""

    try:  # Local import to avoid mandatory PySide6 dependency at import time.
        from PySide6.QtWidgets import QApplication
    except ImportError as exc:  # pragma: no cover - depends on desktop stack
        raise RuntimeError("PySide6 must be installed to launch the mdpreview editor.") from exc

    try:
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - depends on env setup
        raise RuntimeError("qasync is required to run the async Qt event loop.") from exc

    app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    app.setApplicationName("mdpreview")
    app.setApplicationDisplayName("Markdown Preview")

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    app.aboutToQuit.connect(loop.stop)
    return QtRuntime(app=app, loop=loop)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `mdpreview` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("MDPREVIEW_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("MDPREVIEW_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.headless:
        if args.path is None:
            print("--headless requires a PATH to watch", file=sys.stderr)
            return 2
        return run_headless(settings, Path(args.path), line=args.line)
    return run_editor(settings, Path(args.path) if args.path else None, line=args.line)


def run_headless(
    settings: Settings,
    path: Path,
    *,
    line: int = 1,
    loop: asyncio.AbstractEventLoop | None = None,
) -> int:
    """Preview ``path`` and refresh whenever it is saved, until interrupted."""

    from .ui.file_watcher import FileSource, FileWatcher

    loop = loop or asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    controller = PreviewController(settings, loop=loop)
    try:
        source = FileSource(path, line=line)
        controller.start(source)
    except (PreviewError, OSError) as exc:
        print(f"Markdown preview: {exc}", file=sys.stderr)
        _drain_event_loop(loop)
        loop.close()
        return 1

    watcher = FileWatcher(
        path,
        lambda: controller.handle_event(EditorEvent.WRITE_COMPLETED),
        interval=settings.poll_interval,
        loop=loop,
    )
    watcher.start()
    url = getattr(controller.server, "url", None) or settings.server_url()
    _LOGGER.info("Watching %s; preview at %s", path, url)
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        with contextlib.suppress(RuntimeError):
            loop.run_until_complete(watcher.aclose())
        controller.stop()
        _drain_event_loop(loop)
        loop.close()
    return 0


def run_editor(settings: Settings, path: Path | None, *, line: int = 1) -> int:
    from .ui.editor_window import PreviewEditorWindow

    runtime = create_qapp()
    controller = PreviewController(settings, loop=runtime.loop)
    window = PreviewEditorWindow(controller)
    if path is not None:
        window.open_path(path, line=line)
    window.show()
    if path is not None:
        window.start_preview()

    loop = runtime.loop
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        controller.stop()
        _drain_event_loop(loop)
        loop.close()
    return 0


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel outstanding tasks and shutdown async machinery before closing."""

    if loop.is_closed():
        return

    async def _cleanup() -> None:
        current_task = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks(loop) if not task.done() and task is not current_task]
        if tasks:
            _LOGGER.debug("Canceling %s pending asyncio task(s) before shutdown.", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_asyncgens()

    try:
        loop.run_until_complete(_cleanup())
    except RuntimeError as exc:  # pragma: no cover - loop already running
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mdpreview",
        description="Live browser preview for markdown documents and mermaid diagrams.",
    )
    parser.add_argument("path", nargs="?", help="Document to open and preview.")
    parser.add_argument(
        "--line",
        type=int,
        default=1,
        help="1-based cursor line used to pick the diagram block in non-markdown files.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Skip the editor window; watch PATH on disk and refresh on save.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.mdpreview/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    args = parser.parse_args(argv)
    if args.line < 1:
        parser.error("--line must be >= 1")
    return args


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if _is_optional(annotation) and normalized.lower() in {"none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is list:
        if normalized.startswith("["):
            try:
                value = json.loads(normalized)
            except json.JSONDecodeError as exc:
                raise ValueError("List overrides must be valid JSON arrays") from exc
            if not isinstance(value, list):
                raise ValueError("List overrides must be valid JSON arrays")
            return value
        # Comma-separated shorthand: --set diagram_suffixes=.mmd,.mermaid
        return [part.strip() for part in normalized.split(",") if part.strip()]
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _is_optional(annotation: Any) -> bool:
    return type(None) in get_args(annotation)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": asdict(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("MDPREVIEW_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
