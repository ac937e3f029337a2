"""Error types raised by the preview pipeline.

Only the user-facing entry points (start, explicit refresh) let these escape;
debounced background refreshes log and drop the recoverable ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar


class ErrorCode:
    """Machine-readable identifiers attached to :class:`PreviewError`."""

    NO_CONTENT = "no_content"
    NO_BLOCK = "no_block"
    TOOL_UNAVAILABLE = "external_tool_unavailable"
    TOOL_FAILURE = "external_tool_failure"
    SERVER_START = "server_start_failure"
    WORKSPACE_IO = "workspace_io_failure"


@dataclass
class PreviewError(Exception):
    """Base class for every failure surfaced by the pipeline."""

    message: str
    error_code: str = "preview_error"
    details: dict[str, Any] = field(default_factory=dict)

    # Recoverable errors are swallowed by background refreshes.
    recoverable: ClassVar[bool] = True

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def __str__(self) -> str:
        return self.message


@dataclass
class NoContentError(PreviewError):
    """Nothing resolvable for the current document/cursor."""

    message: str = "Nothing to preview for the current document"
    error_code: str = ErrorCode.NO_CONTENT


@dataclass
class NoBlockError(PreviewError):
    """No diagram block under (or above) the cursor."""

    message: str = "No ```mermaid fenced code block found under (or above) the cursor"
    error_code: str = ErrorCode.NO_BLOCK


@dataclass
class ExternalToolUnavailable(PreviewError):
    message: str = "External diagram renderer is not installed"
    error_code: str = ErrorCode.TOOL_UNAVAILABLE
    command: str = ""


@dataclass
class ExternalToolFailure(PreviewError):
    """One renderer invocation failed; only that diagram is affected."""

    message: str = "External diagram renderer failed"
    error_code: str = ErrorCode.TOOL_FAILURE
    diagnostic: str = ""


@dataclass
class ServerStartError(PreviewError):
    message: str = "Failed to start preview server"
    error_code: str = ErrorCode.SERVER_START
    port: int = 0

    recoverable: ClassVar[bool] = False

    def __str__(self) -> str:
        return f"{self.message} on port {self.port}"


@dataclass
class WorkspaceIOError(PreviewError):
    message: str = "Unable to write preview workspace"
    error_code: str = ErrorCode.WORKSPACE_IO
    path: Path | None = None

    recoverable: ClassVar[bool] = False

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


__all__ = [
    "ErrorCode",
    "PreviewError",
    "NoContentError",
    "NoBlockError",
    "ExternalToolUnavailable",
    "ExternalToolFailure",
    "ServerStartError",
    "WorkspaceIOError",
]
