"""Tests covering the application bootstrap helpers."""

from __future__ import annotations

import asyncio
import io
import json
from pathlib import Path

import pytest

from mdpreview import app
from mdpreview.services.settings import Settings, SettingsStore


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda *args, **kwargs: None)


def test_coerce_cli_overrides_uses_field_types() -> None:
    overrides = app._coerce_cli_overrides(
        [
            "port=9000",
            "open_browser=no",
            "renderer_timeout=2.5",
            "host= 0.0.0.0 ",
        ]
    )

    assert overrides == {
        "port": 9000,
        "open_browser": False,
        "renderer_timeout": 2.5,
        "host": "0.0.0.0",
    }


def test_coerce_cli_overrides_accepts_none_for_optional_fields() -> None:
    assert app._coerce_cli_overrides(["workspace_dir=none"]) == {"workspace_dir": None}


def test_coerce_cli_overrides_parses_lists() -> None:
    comma = app._coerce_cli_overrides(["diagram_suffixes=.mmd, .mermaid"])
    as_json = app._coerce_cli_overrides(['renderer_command=["mmdc", "-i", "-"]'])

    assert comma == {"diagram_suffixes": [".mmd", ".mermaid"]}
    assert as_json == {"renderer_command": ["mmdc", "-i", "-"]}


@pytest.mark.parametrize(
    "entry",
    ["unknown=1", "port", "=3", "open_browser=maybe", "port=eighty", "renderer_command=[1"],
)
def test_coerce_cli_overrides_rejects_invalid_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        app._coerce_cli_overrides([entry])


def test_load_settings_falls_back_to_defaults_on_errors() -> None:
    class _BrokenStore(SettingsStore):
        def load(self, *, overrides=None):  # type: ignore[override]
            raise OSError("disk unavailable")

    settings = app.load_settings(store=_BrokenStore(Path("unused.json")))

    assert settings == Settings()


def test_main_dump_settings_reports_effective_values(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).save(Settings(debounce_ms=50))

    exit_code = app.main(
        ["--dump-settings", "--settings-path", str(settings_path), "--set", "port=9000"]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["settings"]["port"] == 9000
    assert payload["settings"]["debounce_ms"] == 50
    assert payload["meta"]["path"] == str(settings_path)
    assert payload["meta"]["cli_overrides"] == ["port"]
    assert "MDPREVIEW_LOG_DIR" in payload["meta"]["environment_variables"]


def test_main_rejects_invalid_override(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        app.main(["--settings-path", str(tmp_path / "s.json"), "--set", "port=abc", "--dump-settings"])

    assert excinfo.value.code == 2


def test_main_headless_requires_path(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = app.main(["--headless", "--settings-path", str(tmp_path / "s.json")])

    assert exit_code == 2
    assert "--headless requires a PATH" in capsys.readouterr().err


def test_parse_cli_args_rejects_non_positive_line() -> None:
    with pytest.raises(SystemExit):
        app._parse_cli_args(["doc.md", "--line", "0"])


def test_run_headless_reports_unreadable_document(
    tmp_path: Path, settings: Settings, capsys: pytest.CaptureFixture[str]
) -> None:
    loop = asyncio.new_event_loop()
    try:
        exit_code = app.run_headless(settings, tmp_path / "missing.md", loop=loop)
    finally:
        asyncio.set_event_loop(None)

    assert exit_code == 1
    assert loop.is_closed()
    assert capsys.readouterr().err.startswith("Markdown preview:")


def test_run_headless_reports_missing_diagram(
    tmp_path: Path, settings: Settings, capsys: pytest.CaptureFixture[str]
) -> None:
    document = tmp_path / "script.py"
    document.write_text("print('no diagrams here')\n", encoding="utf-8")
    loop = asyncio.new_event_loop()
    try:
        exit_code = app.run_headless(settings, document, loop=loop)
    finally:
        asyncio.set_event_loop(None)

    assert exit_code == 1
    assert "Markdown preview:" in capsys.readouterr().err


def test_drain_event_loop_cancels_pending_tasks() -> None:
    loop = asyncio.new_event_loop()
    try:
        task = loop.create_task(asyncio.sleep(60))
        app._drain_event_loop(loop)
        assert task.cancelled()
    finally:
        loop.close()

    # Closed loops are ignored.
    app._drain_event_loop(loop)


def test_dump_settings_writes_to_stream(tmp_path: Path) -> None:
    buffer = io.StringIO()
    store = SettingsStore(tmp_path / "settings.json")

    app._dump_settings(Settings(port=1234), store, overrides={"port": 1234}, stream=buffer)

    payload = json.loads(buffer.getvalue())
    assert payload["settings"]["port"] == 1234
    assert payload["meta"]["cli_overrides"] == ["port"]
