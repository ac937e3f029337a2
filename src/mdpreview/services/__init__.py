"""Service layer helpers (live server, settings)."""

from .live_server import EVENTS_PATH, LiveServer
from .settings import Settings, SettingsStore

__all__ = ["EVENTS_PATH", "LiveServer", "Settings", "SettingsStore"]
