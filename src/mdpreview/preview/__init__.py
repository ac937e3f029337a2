"""Preview pipeline: content resolution, extraction, splicing and publication."""

from .controller import EditorEvent, PreviewController
from .errors import (
    ErrorCode,
    ExternalToolFailure,
    ExternalToolUnavailable,
    NoBlockError,
    NoContentError,
    PreviewError,
    ServerStartError,
    WorkspaceIOError,
)
from .session import PreviewSession

__all__ = [
    "EditorEvent",
    "PreviewController",
    "PreviewSession",
    # Errors
    "ErrorCode",
    "PreviewError",
    "NoContentError",
    "NoBlockError",
    "ExternalToolUnavailable",
    "ExternalToolFailure",
    "ServerStartError",
    "WorkspaceIOError",
]
