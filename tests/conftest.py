"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from mdpreview.services.settings import Settings


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep user-level settings, logs and workspaces out of the test run."""

    for name in list(os.environ):
        if name.startswith("MDPREVIEW_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MDPREVIEW_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        port=0,
        open_browser=False,
        workspace_dir=str(tmp_path / "workspaces"),
        debounce_ms=20,
    )
