"""Per-document on-disk area served to the preview display."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..editor.document_model import Document
from ..utils import file_io
from .errors import WorkspaceIOError

__all__ = [
    "PreviewWorkspace",
    "workspace_base",
    "workspace_for",
    "shell_template_path",
    "render_shell",
]

LOGGER = logging.getLogger(__name__)
_DEFAULT_WORKSPACE_BASE = Path.home() / ".mdpreview" / "workspaces"
_SHELL_TEMPLATE = Path(__file__).resolve().parent.parent / "assets" / "index.html"
# Replaced (quotes included) with the JSON-encoded content artifact name.
_CONTENT_NAME_PLACEHOLDER = "\"__MDPREVIEW_CONTENT_NAME__\""


def workspace_base(override: Path | str | None = None) -> Path:
    """Directory under which every document gets its own workspace."""

    env_override = os.environ.get("MDPREVIEW_WORKSPACE_DIR")
    return Path(override or env_override or _DEFAULT_WORKSPACE_BASE).expanduser()


def workspace_for(document: Document, *, base_dir: Path | str | None = None) -> Path:
    """Workspace path for ``document``; distinct origins never share one."""

    return workspace_base(base_dir) / file_io.origin_digest(document.origin)


def shell_template_path() -> Path:
    return _SHELL_TEMPLATE


def render_shell(template: str, content_name: str) -> str:
    """Bake the content artifact name into the browser shell."""

    literal = json.dumps(content_name).replace("</", "<\\/")
    return template.replace(_CONTENT_NAME_PLACEHOLDER, literal)


@dataclass(slots=True)
class PreviewWorkspace:
    """Holds the static shell and the content artifact for one document.

    The content artifact is rewritten in full on every effective change; it
    is never appended to.
    """

    directory: Path
    index_name: str = "index.html"
    content_name: str = "content.md"
    template: Path = _SHELL_TEMPLATE

    @property
    def index_path(self) -> Path:
        return self.directory / self.index_name

    @property
    def content_path(self) -> Path:
        return self.directory / self.content_name

    def ensure(self) -> Path:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceIOError(
                message="Unable to create preview workspace",
                path=self.directory,
                details={"reason": str(exc)},
            ) from exc
        return self.directory

    def write_index(self, *, overwrite: bool = True) -> Path:
        """Write the packaged shell, with the content name filled in, into the workspace.

        With ``overwrite`` disabled an existing shell (possibly customized by
        the user) is kept.
        """

        target = self.index_path
        if not overwrite and target.exists():
            return target
        if not self.template.is_file():
            raise WorkspaceIOError(
                message="Preview shell template is missing from the installation",
                path=self.template,
            )
        self.ensure()
        try:
            shell = file_io.read_text(self.template)
            file_io.write_text(target, render_shell(shell, self.content_name))
        except OSError as exc:
            raise WorkspaceIOError(message="Unable to write preview shell", path=target) from exc
        LOGGER.debug("Wrote preview shell to %s", target)
        return target

    def write_content(self, text: str) -> Path:
        self.ensure()
        try:
            path = file_io.write_text(self.content_path, text)
        except OSError as exc:
            raise WorkspaceIOError(
                message="Unable to write preview content",
                path=self.content_path,
                details={"reason": str(exc)},
            ) from exc
        LOGGER.debug("Wrote %d chars to %s", len(text), path)
        return path
