from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from docrules.cli import cli
from docrules.commands.lint import run_explain, run_lint, run_rules


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture(autouse=True)
def wide_console(monkeypatch) -> None:
    """Keep rich from wrapping table cells and long lines."""
    monkeypatch.setenv("COLUMNS", "240")


@pytest.fixture
def ruleset_path(fixtures_path: Path) -> Path:
    return fixtures_path / "api_style.yaml"


@pytest.fixture
def bad_document(tmp_path: Path, oas3_bad) -> Path:
    path = tmp_path / "openapi.yaml"
    _write(path, yaml.safe_dump(oas3_bad, sort_keys=False))
    return path


@pytest.fixture
def good_document(tmp_path: Path, oas3_good) -> Path:
    path = tmp_path / "good.json"
    _write(path, json.dumps(oas3_good))
    return path


def test_lint_json_output(bad_document: Path, ruleset_path: Path, capsys) -> None:
    exit_code = run_lint(bad_document, ruleset_path, output_json=True)
    assert exit_code == 1

    data = json.loads(capsys.readouterr().out)
    assert data["source"] == str(bad_document)
    assert data["counts"] == {"error": 6, "warning": 6, "info": 0, "hint": 0}
    assert data["violations"][0]["rule"] == "hosts-https-only-oas3"
    assert data["violations"][0]["path"] == ["servers", 0, "url"]


def test_lint_human_output(bad_document: Path, ruleset_path: Path, capsys) -> None:
    exit_code = run_lint(bad_document, ruleset_path)
    assert exit_code == 1

    err = capsys.readouterr().err
    assert "(formats: oas3, oas3.0)" in err
    assert "paths./Users [paths-kebab-case]" in err
    assert "6 error(s)" in err


def test_lint_fail_on_and_severity_filter(bad_document: Path, ruleset_path: Path, capsys) -> None:
    # Only warnings are reported, so nothing reaches the error threshold.
    assert run_lint(bad_document, ruleset_path, severities=("warning",), output_json=True) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["counts"]["warning"] == 6
    assert data["counts"]["error"] == 0

    assert run_lint(bad_document, ruleset_path, severities=("warning",), fail_on="warning") == 1


def test_lint_declared_formats_disable_detection(bad_document: Path, ruleset_path: Path, capsys) -> None:
    run_lint(bad_document, ruleset_path, formats=("oas2",), output_json=True)
    rules = {v["rule"] for v in json.loads(capsys.readouterr().out)["violations"]}
    assert "hosts-https-only-oas3" not in rules
    assert "api-health" in rules


def test_lint_clean_document(good_document: Path, ruleset_path: Path, capsys) -> None:
    assert run_lint(good_document, ruleset_path, workers=4) == 0
    assert "No errors or warnings" in capsys.readouterr().err


def test_lint_invalid_ruleset(tmp_path: Path, bad_document: Path, capsys) -> None:
    ruleset = tmp_path / "broken.yaml"
    _write(
        ruleset,
        """
rules:
  one:
    given: $.paths[
    then: {function: truthy}
  two:
    given: $.paths
    then: {function: nope}
""",
    )
    assert run_lint(bad_document, ruleset) == 2
    err = capsys.readouterr().err
    assert "invalid selector" in err
    assert "unknown function 'nope'" in err


def test_lint_unreadable_document(tmp_path: Path, ruleset_path: Path) -> None:
    document = tmp_path / "broken.yaml"
    _write(document, "openapi: [3.0\n")
    assert run_lint(document, ruleset_path) == 2


def test_rules_table(ruleset_path: Path, capsys) -> None:
    assert run_rules(ruleset_path) == 0
    out = capsys.readouterr().out
    assert "no-x-headers" in out
    assert "16 rule(s), 16 enabled" in out
    assert "Available functions:" in out


def test_explain(ruleset_path: Path, capsys) -> None:
    assert run_explain("no-http-basic", ruleset_path) == 0
    out = capsys.readouterr().out
    assert "no-http-basic" in out
    assert "securitySchemes" in out

    assert run_explain("not-a-rule", ruleset_path) == 1


def test_cli_exit_codes(bad_document: Path, good_document: Path, ruleset_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["--ruleset", str(ruleset_path), "lint", str(bad_document), "--json"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["counts"]["error"] == 6

    result = runner.invoke(cli, ["-r", str(ruleset_path), "lint", str(good_document)])
    assert result.exit_code == 0

    result = runner.invoke(cli, ["-r", str(ruleset_path), "lint", str(bad_document), "--fail-on", "hint", "--severity", "info"])
    assert result.exit_code == 0


def test_cli_finds_project_ruleset(tmp_path: Path, ruleset_path: Path, monkeypatch) -> None:
    _write(tmp_path / ".docrules.yaml", ruleset_path.read_text(encoding="utf-8"))
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli, ["rules"])
    assert result.exit_code == 0
    assert "api-home" in result.stdout


def test_lint_document_with_invalid_encoding(tmp_path: Path, ruleset_path: Path, capsys) -> None:
    document = tmp_path / "latin.yaml"
    document.write_bytes(b"openapi: \xff\xfe3.0\n")
    assert run_lint(document, ruleset_path) == 2
    assert "Cannot read document" in capsys.readouterr().err
