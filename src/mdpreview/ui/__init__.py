"""Editing environments feeding the preview: Qt editor window and headless watcher."""

from .editor_window import BufferSource, PreviewEditorWindow, WindowAction
from .file_watcher import FileSource, FileWatcher

__all__ = [
    "BufferSource",
    "FileSource",
    "FileWatcher",
    "PreviewEditorWindow",
    "WindowAction",
]
