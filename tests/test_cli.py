from __future__ import annotations

import json
from pathlib import Path

import pytest

from helpers import run_snipctl
from snipctl import __version__
from snipctl.cli.main import build_parser, main
from snipctl.contracts.validate import ERROR, validate
from snipctl.core.exit_codes import ERR_CONFIG, ERR_FAILED, ERR_INPUT, ERR_STRUCTURAL, OK

PASSING = "# Passing\n\n```python\nprint('hi')  # Output: hi\n```\n"
FAILING = "# Failing\n\n```python\nprint(5)\n```\n\nOutput: `4`\n"
BROKEN = "# Broken\n\n```python\nprint('never closed')\n"


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit) as err:
        build_parser().parse_args([])
    assert err.value.code == 2


def test_parser_accepts_repeatable_globs() -> None:
    ns = build_parser().parse_args(["--json", "check", "docs", "--include", "*.md", "--include", "*.rst", "--jobs", "2"])
    assert ns.cmd == "check"
    assert ns.include == ["*.md", "*.rst"]
    assert ns.jobs == 2
    assert ns.json is True


@pytest.mark.integration
def test_version_command(tmp_path: Path) -> None:
    proc = run_snipctl("version", cwd=tmp_path)
    assert proc.returncode == OK
    assert proc.stdout.strip() == f"snipctl {__version__}"
    proc = run_snipctl("--json", "version", cwd=tmp_path)
    assert json.loads(proc.stdout)["version"] == __version__


@pytest.mark.integration
def test_check_passing_document(tmp_path: Path) -> None:
    (tmp_path / "guide.md").write_text(PASSING, encoding="utf-8")
    proc = run_snipctl("check", "guide.md", cwd=tmp_path)
    assert proc.returncode == OK, proc.stderr
    assert "PASS guide.md passed=1 failed=0 skipped=0 total=1" in proc.stdout
    assert proc.stdout.strip().splitlines()[-1].startswith("summary: documents=1")


@pytest.mark.integration
def test_check_failing_document_reports_diff(tmp_path: Path) -> None:
    (tmp_path / "guide.md").write_text(FAILING, encoding="utf-8")
    proc = run_snipctl("check", "guide.md", cwd=tmp_path)
    assert proc.returncode == ERR_FAILED
    assert "guide.md:3-5 [comparison-mismatch]" in proc.stdout
    assert "    -4" in proc.stdout
    assert "    +5" in proc.stdout


@pytest.mark.integration
def test_check_structural_error_exit_code(tmp_path: Path) -> None:
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "a.md").write_text(PASSING, encoding="utf-8")
    (docs / "b.md").write_text(BROKEN, encoding="utf-8")
    proc = run_snipctl("check", "docs", cwd=tmp_path)
    assert proc.returncode == ERR_STRUCTURAL
    assert "PASS docs/a.md" in proc.stdout
    assert "ERROR docs/b.md: unterminated code fence (line 3)" in proc.stdout
    assert "structural-error" in proc.stderr


@pytest.mark.integration
def test_check_json_output_and_report_file(tmp_path: Path) -> None:
    (tmp_path / "pass.md").write_text(PASSING, encoding="utf-8")
    (tmp_path / "fail.md").write_text(FAILING, encoding="utf-8")
    proc = run_snipctl("--json", "check", "pass.md", "fail.md", "--json-report", "out/report.json", cwd=tmp_path)
    assert proc.returncode == ERR_FAILED
    payload = json.loads(proc.stdout)
    assert payload["schema_name"] == "snipctl.report.v1"
    assert payload["status"] == "fail"
    assert payload["summary"] == {"passed": 1, "failed": 1, "skipped": 0, "total": 2}
    assert [doc["path"] for doc in payload["documents"]] == ["pass.md", "fail.md"]
    written = json.loads((tmp_path / "out" / "report.json").read_text(encoding="utf-8"))
    assert written == payload


@pytest.mark.integration
def test_check_missing_path_is_input_error(tmp_path: Path) -> None:
    proc = run_snipctl("--json", "check", "nowhere.md", cwd=tmp_path)
    assert proc.returncode == ERR_INPUT
    error = json.loads(proc.stderr.strip().splitlines()[-1])
    validate(ERROR, error)
    assert error["status"] == "error"
    assert error["errors"][0]["kind"] == "input_error"
    assert error["run_id"] == "pytest-run"


@pytest.mark.integration
def test_quiet_check_prints_only_failures(tmp_path: Path) -> None:
    (tmp_path / "pass.md").write_text(PASSING, encoding="utf-8")
    (tmp_path / "fail.md").write_text(FAILING, encoding="utf-8")
    proc = run_snipctl("--quiet", "check", "pass.md", "fail.md", cwd=tmp_path)
    assert proc.returncode == ERR_FAILED
    assert "pass.md" not in proc.stdout
    assert "FAIL fail.md" in proc.stdout
    proc = run_snipctl("--quiet", "check", "pass.md", cwd=tmp_path)
    assert proc.stdout.strip() == "PASS"
    assert proc.stderr == ""


@pytest.mark.integration
def test_list_command(tmp_path: Path) -> None:
    (tmp_path / "guide.md").write_text(PASSING + FAILING.replace("# Failing\n", "") + "```python\nprint(0)\n```\n", encoding="utf-8")
    proc = run_snipctl("list", "guide.md", cwd=tmp_path)
    assert proc.returncode == OK
    assert proc.stdout.splitlines() == [
        "guide.md:3-5 python expectation=output",
        "guide.md:7-9 python expectation=output",
        "guide.md:12-14 python expectation=none",
    ]


@pytest.mark.integration
def test_config_show_with_yaml_file(tmp_path: Path) -> None:
    (tmp_path / "ci.yaml").write_text("timeout_seconds: 2.5\njobs: 2\n", encoding="utf-8")
    proc = run_snipctl("--json", "--config", "ci.yaml", "config", "show", cwd=tmp_path)
    assert proc.returncode == OK
    config = json.loads(proc.stdout)["config"]
    assert config["timeout_seconds"] == 2.5
    assert config["jobs"] == 2


@pytest.mark.integration
def test_invalid_config_exit_code(tmp_path: Path) -> None:
    (tmp_path / "snipctl.yaml").write_text("jobs: 0\n", encoding="utf-8")
    proc = run_snipctl("config", "show", cwd=tmp_path)
    assert proc.returncode == ERR_CONFIG
    assert proc.stderr.startswith("snipctl: error:")


@pytest.mark.integration
def test_main_in_process(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "guide.md").write_text(PASSING, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RUN_ID", "in-process")
    for var in ("SNIPCTL_TIMEOUT", "SNIPCTL_JOBS", "SNIPCTL_DEADLINE"):
        monkeypatch.delenv(var, raising=False)
    assert main(["--log-json", "--verbose", "check", "guide.md"]) == OK
    captured = capsys.readouterr()
    assert "PASS guide.md" in captured.out
    events = [json.loads(line) for line in captured.err.splitlines() if line.startswith("{")]
    assert events
    assert {event["run_id"] for event in events} == {"in-process"}
    assert any(event["action"] == "summary" for event in events)
