"""Settings dataclass and JSON persistence for the preview plugin."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

__all__ = [
    "Settings",
    "SettingsStore",
    "RENDERER_CHOICES",
    "DEFAULT_AUTO_REFRESH_EVENTS",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".mdpreview"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "MDPREVIEW_HOST": "host",
    "MDPREVIEW_RENDERER": "mermaid_renderer",
    "MDPREVIEW_WORKSPACE_DIR": "workspace_dir",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "MDPREVIEW_OPEN_BROWSER": "open_browser",
    "MDPREVIEW_SCROLL_SYNC": "scroll_sync",
    "MDPREVIEW_DEBUG_LOGGING": "debug_logging",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "MDPREVIEW_PORT": "port",
    "MDPREVIEW_DEBOUNCE_MS": "debounce_ms",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "MDPREVIEW_RENDERER_TIMEOUT": "renderer_timeout",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

RendererMode = Literal["browser", "external"]
RENDERER_CHOICES: tuple[str, ...] = ("browser", "external")
DEFAULT_AUTO_REFRESH_EVENTS: tuple[str, ...] = (
    "insert-left",
    "text-changed",
    "text-changed-insert",
    "write-completed",
)


@dataclass(slots=True)
class Settings:
    """User-configurable preview settings persisted between sessions."""

    host: str = "127.0.0.1"
    port: int = 8421
    open_browser: bool = True
    content_name: str = "content.md"
    index_name: str = "index.html"
    workspace_dir: str | None = None  # base directory; None = ~/.mdpreview/workspaces
    overwrite_index_on_start: bool = True
    auto_refresh: bool = True
    auto_refresh_events: list[str] = field(default_factory=lambda: list(DEFAULT_AUTO_REFRESH_EVENTS))
    debounce_ms: int = 300
    notify_on_refresh: bool = False
    # "browser" = client-side mermaid.js, "external" = pre-render via renderer_command
    mermaid_renderer: str = "browser"
    renderer_command: list[str] = field(default_factory=lambda: ["mmdr", "-e", "svg"])
    renderer_timeout: float = 10.0
    scroll_sync: bool = True
    diagram_language: str = "mermaid"
    diagram_suffixes: list[str] = field(default_factory=lambda: [".mmd", ".mermaid"])
    structural_languages: list[str] = field(
        default_factory=lambda: ["markdown", "quarto", "rmd", "mdx"]
    )
    poll_interval: float = 0.5
    debug_logging: bool = False

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.debounce_ms) / 1000.0

    @property
    def external_renderer_enabled(self) -> bool:
        return self.mermaid_renderer == "external"

    def server_url(self) -> str:
        return f"http://{self.host}:{self.port}/"


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if payload.get("version") != _SETTINGS_VERSION:
                LOGGER.debug("Settings at %s use version %s", self._path, payload.get("version"))

        if overrides:
            settings = _apply_overrides(settings, overrides, source="CLI")
        settings = _apply_env_overrides(settings)
        return _normalize(settings)

    def save(self, settings: Settings) -> Path:
        """Persist ``settings`` using a tmp file + rename."""

        data = asdict(settings)
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, Mapping):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return dict(data)


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def _apply_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    filtered = {
        key: value
        for key, value in _filter_fields(overrides).items()
        if value is not None
    }
    if not filtered:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
    return replace(settings, **filtered)


def _apply_env_overrides(settings: Settings) -> Settings:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None:
            overrides[field_name] = value
    for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None:
            overrides[field_name] = value.strip().lower() in _TRUE_VALUES
    for env_name, field_name in _INT_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = int(value, 10)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
    for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = float(value)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
    if overrides:
        settings = _apply_overrides(settings, overrides, source="environment")
    return settings


def _normalize(settings: Settings) -> Settings:
    mode = str(settings.mermaid_renderer or "").strip().lower()
    if mode not in RENDERER_CHOICES:
        LOGGER.warning("Unknown mermaid_renderer '%s'; defaulting to browser.", settings.mermaid_renderer)
        mode = "browser"
    suffixes = [
        suffix.lower() if suffix.startswith(".") else f".{suffix.lower()}"
        for suffix in settings.diagram_suffixes
        if suffix
    ]
    return replace(settings, mermaid_renderer=mode, diagram_suffixes=suffixes)
