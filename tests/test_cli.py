from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from lessonweaver import cli

from fakes import BLOCKED_IMPORT_SOURCE, SYNTAX_ERROR_SOURCE, VALID_SOURCE, ScriptedProvider

runner = CliRunner()


@pytest.fixture
def scripted(monkeypatch: pytest.MonkeyPatch) -> ScriptedProvider:
    provider = ScriptedProvider()

    class _Factory:
        @staticmethod
        def from_settings(settings):
            return provider

    monkeypatch.setattr(cli, "LLMGenerationProvider", _Factory)
    monkeypatch.setenv("LESSONWEAVER_STORAGE_BACKEND", "jsonl")
    monkeypatch.setenv("LESSONWEAVER_LOG_LEVEL", "WARNING")
    return provider


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_check_valid_source(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["check", str(_write(tmp_path, "page.tsx", VALID_SOURCE))])
    assert result.exit_code == 0
    assert result.output.strip().endswith("valid")


def test_check_reports_issues_and_exits_nonzero(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["check", str(_write(tmp_path, "page.tsx", BLOCKED_IMPORT_SOURCE))])
    assert result.exit_code == 1
    assert "1:18 error import [blocked-import]" in result.output
    assert "invalid" in result.output


def test_check_json_output(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["check", "--json", str(_write(tmp_path, "page.tsx", SYNTAX_ERROR_SOURCE))])
    assert result.exit_code == 1
    assert '"valid": false' in result.output
    assert '"category": "compile"' in result.output


def test_compile_to_file(tmp_path: Path) -> None:
    out = tmp_path / "build" / "page.js"
    result = runner.invoke(cli.app, ["compile", str(_write(tmp_path, "page.tsx", VALID_SOURCE)), "-o", str(out)])
    assert result.exit_code == 0
    assert "React.createElement" in out.read_text(encoding="utf-8")


def test_compile_failure_exits_nonzero(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["compile", str(_write(tmp_path, "page.tsx", SYNTAX_ERROR_SOURCE))])
    assert result.exit_code == 1
    assert "compilation failed" in result.output


def test_run_then_status(tmp_path: Path, scripted: ScriptedProvider) -> None:
    data_dir = tmp_path / "data"
    artifacts = tmp_path / "artifacts"
    result = runner.invoke(
        cli.app,
        ["run", "Primary colors for ages 5-6", "--data-dir", str(data_dir), "--artifacts-dir", str(artifacts)],
    )
    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0].startswith("outline request ")
    assert lines[-1] == "completed"
    request_id = lines[0].split()[-1]
    assert (data_dir / "statuses" / f"{request_id}.jsonl").exists()
    assert len(list(artifacts.glob("lessons/*/page.js"))) == 1

    result = runner.invoke(cli.app, ["status", request_id, "--data-dir", str(data_dir)])
    assert result.exit_code == 0
    assert "lessons_validated" in result.output
    assert "attempts=1" in result.output

    result = runner.invoke(cli.app, ["resume", request_id, "--data-dir", str(data_dir)])
    assert result.exit_code == 0
    assert result.output.strip() == "completed"
    assert scripted.calls["validate_outline"] == 1


def test_status_of_unknown_request(tmp_path: Path, scripted: ScriptedProvider) -> None:
    result = runner.invoke(cli.app, ["status", "missing", "--data-dir", str(tmp_path)])
    assert result.exit_code == 1
    assert "outline request not found" in result.output


def test_run_requires_an_outline(tmp_path: Path, scripted: ScriptedProvider) -> None:
    result = runner.invoke(cli.app, ["run", "--data-dir", str(tmp_path)])
    assert result.exit_code != 0
