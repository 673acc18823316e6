"""Tests covering the command line entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from marginalia import app
from marginalia.services.settings import Settings, SettingsStore

DOCUMENT = "The letter was written by Maria. She sealed it at dawn.\n"
RESPONSE = 'ISSUE: Flat verb\nPASSAGE: "She sealed it at dawn."\nSUGGESTION: "She pressed the wax at first light."\n'


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> list[bool]:
    calls: list[bool] = []
    monkeypatch.setattr(app, "configure_logging", lambda debug=False, *, force=False: calls.append(debug))
    return calls


@pytest.fixture
def chapter(tmp_path: Path) -> Path:
    path = tmp_path / "chapter.md"
    path.write_text(DOCUMENT, encoding="utf-8")
    return path


def _run(*argv: str) -> tuple[int, str]:
    stream = io.StringIO()
    code = app.main(list(argv), stream=stream)
    return code, stream.getvalue()


def test_annotate_prints_json_report(chapter: Path, tmp_path: Path) -> None:
    response = tmp_path / "response.txt"
    response.write_text(RESPONSE, encoding="utf-8")

    code, output = _run("annotate", str(chapter), "--response", str(response))

    assert code == 0
    report = json.loads(output)
    assert report["file"] == str(chapter)
    assert report["count"] == 1
    (annotation,) = report["annotations"]
    assert DOCUMENT[annotation["from"] : annotation["to"]] == "She sealed it at dawn."
    assert annotation["message"] == "Flat verb"
    assert annotation["suggestion"] == "She pressed the wax at first light."


def test_annotate_type_override(chapter: Path, tmp_path: Path) -> None:
    response = tmp_path / "response.txt"
    response.write_text(RESPONSE, encoding="utf-8")

    code, output = _run("annotate", str(chapter), "--response", str(response), "--type", "consistency")

    assert code == 0
    assert json.loads(output)["annotations"][0]["type"] == "consistency"


def test_passive_command(chapter: Path) -> None:
    code, output = _run("passive", str(chapter))

    assert code == 0
    report = json.loads(output)
    assert report["count"] == 1
    assert report["annotations"][0]["type"] == "passive_voice"
    assert report["annotations"][0]["matched_text"] == "The letter was written by Maria."


def test_analyze_without_api_key_fails_cleanly(chapter: Path) -> None:
    code, output = _run("analyze", str(chapter), "--mode", "style")

    assert code == 1
    report = json.loads(output)
    assert report["status"] == "failed"
    assert "API key" in report["error"]
    assert report["count"] == 0


def test_missing_document_returns_error(tmp_path: Path) -> None:
    code, output = _run("passive", str(tmp_path / "missing.md"))
    assert code == 1
    assert output == ""


def test_no_command_prints_help() -> None:
    code, output = _run()
    assert code == 2
    assert "usage: marginalia" in output


def test_dump_settings_redacts_secrets(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).save(Settings(api_key="sk-secret-value"))
    monkeypatch.setenv("MARGINALIA_THEME", "light")

    code, output = _run("--settings-path", str(settings_path), "--set", "model=gpt-test", "--dump-settings")

    assert code == 0
    payload = json.loads(output)
    assert payload["settings"]["api_key"] == "sk***********ue"
    assert payload["settings"]["model"] == "gpt-test"
    assert payload["settings"]["theme"] == "light"
    assert payload["meta"]["path"] == str(settings_path)
    assert payload["meta"]["cli_overrides"] == ["model"]
    assert "MARGINALIA_THEME" in payload["meta"]["environment_variables"]


def test_invalid_override_returns_2(capsys: pytest.CaptureFixture[str]) -> None:
    code, _ = _run("--set", "no_such_setting=1", "--dump-settings")
    assert code == 2
    assert "Unknown setting" in capsys.readouterr().err


def test_debug_flag_reaches_logging(_quiet_logging: list[bool]) -> None:
    _run("--debug", "--dump-settings")
    assert _quiet_logging == [True]


def test_coerce_cli_overrides_types() -> None:
    overrides = app._coerce_cli_overrides(
        [
            "debug_logging=yes",
            "max_tokens=128",
            "temperature=0.5",
            'default_headers={"X-A": "1"}',
            "theme=light",
        ]
    )
    assert overrides == {
        "debug_logging": True,
        "max_tokens": 128,
        "temperature": 0.5,
        "default_headers": {"X-A": "1"},
        "theme": "light",
    }
    with pytest.raises(ValueError):
        app._coerce_cli_overrides(["debug_logging=maybe"])
    with pytest.raises(ValueError):
        app._coerce_cli_overrides(["missing-equals"])
