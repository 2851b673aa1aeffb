"""Integration tests for Vigil CLI commands.

These tests exercise the full CLI workflow against the sample repository,
with LiteLLM mocked and all state under a temporary working directory.
"""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from vigil import __version__
from vigil.cli import app

from tests.fixtures import VULNERABLE_APP_PATH

runner = CliRunner()

pytestmark = pytest.mark.integration


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every command from an empty directory (config, rules, database)."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def rules_file(workdir: Path, rules_yaml: str) -> Path:
    """Two-rule file: one high, one medium."""
    path = workdir / "rules.yaml"
    path.write_text(rules_yaml)
    return path


def _scan(rules_file: Path, output: Path, *extra: str) -> list[str]:
    return [
        "--quiet",
        "scan",
        str(VULNERABLE_APP_PATH),
        "--rules", str(rules_file),
        "--output", str(output),
        "--no-prefilter",
        *extra,
    ]


class TestVigilScan:
    """Integration tests for `vigil scan`."""

    def test_scan_with_findings_exits_2(
        self, workdir: Path, rules_file: Path, vulnerable_response: MagicMock
    ) -> None:
        """Test a high finding fails the run and the report is written."""
        output = workdir / "out" / "report.json"

        with patch("litellm.completion", return_value=vulnerable_response) as mock_call:
            result = runner.invoke(app, _scan(rules_file, output))

        assert result.exit_code == 2, result.output
        # Three non-empty files times two rules
        assert mock_call.call_count == 6

        data = json.loads(output.read_text())
        assert data["scan"]["status"] == "completed"
        assert data["scan"]["repository_name"] == "vulnerable_app"
        assert data["report"]["overall_severity"] == "high"
        assert len(data["report"]["findings"]) == 6
        assert data["tree"]["type"] == "directory"
        assert data["errors"] == []
        locations = {f["location"] for f in data["report"]["findings"]}
        assert locations == {"src/shop/app.py", "src/shop/db.py", "static/js/format.js"}

    def test_clean_scan_exits_0(
        self, workdir: Path, rules_file: Path, safe_response: MagicMock
    ) -> None:
        """Test a scan without findings succeeds."""
        output = workdir / "report.json"

        with patch("litellm.completion", return_value=safe_response):
            result = runner.invoke(app, _scan(rules_file, output))

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text())
        assert data["report"]["findings"] == []
        assert data["report"]["overall_severity"] == "low"

    def test_rescan_makes_no_llm_calls(
        self, workdir: Path, rules_file: Path, safe_response: MagicMock
    ) -> None:
        """Test the cache persists across CLI invocations."""
        output = workdir / "report.json"

        with patch("litellm.completion", return_value=safe_response) as mock_call:
            runner.invoke(app, _scan(rules_file, output))
            first_calls = mock_call.call_count
            result = runner.invoke(app, _scan(rules_file, output))

        assert result.exit_code == 0, result.output
        assert first_calls == 6
        assert mock_call.call_count == first_calls

    def test_no_cache_reclassifies(
        self, workdir: Path, rules_file: Path, safe_response: MagicMock
    ) -> None:
        """Test --no-cache sends every pair to the LLM again."""
        output = workdir / "report.json"

        with patch("litellm.completion", return_value=safe_response) as mock_call:
            runner.invoke(app, _scan(rules_file, output))
            runner.invoke(app, _scan(rules_file, output, "--no-cache"))

        assert mock_call.call_count == 12

    def test_include_content(
        self, workdir: Path, rules_file: Path, vulnerable_response: MagicMock
    ) -> None:
        """Test --include-content attaches file content to findings."""
        output = workdir / "report.json"

        with patch("litellm.completion", return_value=vulnerable_response):
            runner.invoke(app, _scan(rules_file, output, "--include-content"))

        findings = json.loads(output.read_text())["report"]["findings"]
        assert all("file_content" in f for f in findings)

    def test_missing_rules_fails(self, workdir: Path) -> None:
        """Test scanning without a rule file exits 1 before any LLM call."""
        with patch("litellm.completion") as mock_call:
            result = runner.invoke(app, ["scan", str(VULNERABLE_APP_PATH)])

        assert result.exit_code == 1
        mock_call.assert_not_called()

    def test_empty_repository_fails(self, workdir: Path, rules_file: Path) -> None:
        """Test a repository with nothing to analyze exits 1 and records a failed scan."""
        empty = workdir / "empty"
        empty.mkdir()
        (empty / "README.md").write_text("# nothing here\n")

        result = runner.invoke(app, ["scan", str(empty), "--rules", str(rules_file)])

        assert result.exit_code == 1

        status = runner.invoke(app, ["status", "--json"])
        [record] = json.loads(status.stdout)
        assert record["status"] == "failed"
        assert "No analyzable files" in record["error_message"]


class TestVigilStatusAndReport:
    """Integration tests for `vigil status` and `vigil report`."""

    def test_status_and_report_after_scan(
        self, workdir: Path, rules_file: Path, vulnerable_response: MagicMock
    ) -> None:
        """Test a completed scan is listed and its report can be reprinted."""
        with patch("litellm.completion", return_value=vulnerable_response):
            runner.invoke(app, _scan(rules_file, workdir / "scan.json"))

        status = runner.invoke(app, ["status", "--json"])
        assert status.exit_code == 0
        [record] = json.loads(status.stdout)
        assert record["status"] == "completed"
        assert record["progress_percent"] == 100
        assert record["processed_files"] == record["total_files"] == 4

        single = runner.invoke(app, ["status", record["id"], "--json"])
        assert json.loads(single.stdout)["id"] == record["id"]

        output = workdir / "again.json"
        result = runner.invoke(app, ["--quiet", "report", record["id"], "--output", str(output)])
        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data["scan"]["id"] == record["id"]
        assert len(data["report"]["findings"]) == 6
        assert data["tree"]["name"] == "vulnerable_app"

    def test_status_empty(self, workdir: Path) -> None:
        """Test listing with no scans."""
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "No scans yet" in result.stdout

    def test_unknown_scan(self, workdir: Path) -> None:
        """Test unknown scan ids exit 1."""
        assert runner.invoke(app, ["status", "nope"]).exit_code == 1
        assert runner.invoke(app, ["report", "nope"]).exit_code == 1


class TestVigilRules:
    """Integration tests for `vigil rules`."""

    def test_list(self, workdir: Path, rules_file: Path) -> None:
        """Test rules are listed with id, severity and name."""
        result = runner.invoke(app, ["rules", "--rules", str(rules_file)])

        assert result.exit_code == 0
        assert "hardcoded-credentials" in result.stdout
        assert "rule-2" in result.stdout
        assert "Weak Cryptography" in result.stdout

    def test_export_json_without_ids(self, workdir: Path, rules_file: Path) -> None:
        """Test JSON export uses llmPrompt and can omit ids."""
        export = workdir / "export" / "rules.json"

        result = runner.invoke(
            app, ["rules", "--rules", str(rules_file), "--export", str(export), "--no-ids"]
        )

        assert result.exit_code == 0
        entries = json.loads(export.read_text())
        assert len(entries) == 2
        assert "id" not in entries[0]
        assert entries[1]["llmPrompt"].startswith("Check for MD5")


class TestVigilCheck:
    """Integration tests for `vigil check`."""

    def test_check_json_output(self, workdir: Path, rules_file: Path) -> None:
        """Test check --json outputs valid JSON."""
        (workdir / "vigil.yaml").write_text(f'rules:\n  path: "{rules_file}"\n')

        result = runner.invoke(app, ["--quiet", "check", "--skip-llm", "--json"])

        # 0 when git is installed, 2 when only the optional git check fails
        assert result.exit_code in (0, 2)
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert {c["name"] for c in data["checks"]} == {"git", "storage", "rules", "litellm"}

    def test_check_fails_without_rules(self, workdir: Path) -> None:
        """Test a missing rule file is a required failure."""
        result = runner.invoke(app, ["check", "--skip-llm"])

        assert result.exit_code == 1
        assert "Preflight check FAILED" in result.stdout


class TestVigilInit:
    """Integration tests for `vigil init`."""

    def test_init_creates_config(self, workdir: Path) -> None:
        """Test init creates config and starter rules."""
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert (workdir / ".vigil" / "config.yaml").exists()
        assert (workdir / ".vigil" / "rules.yaml").exists()

        listed = runner.invoke(app, ["rules"])
        assert "sql-injection" in listed.stdout

    def test_init_refuses_to_overwrite(self, workdir: Path) -> None:
        """Test init without --force keeps existing files."""
        runner.invoke(app, ["init"])
        config = workdir / ".vigil" / "config.yaml"
        config.write_text("# edited\n")

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 1
        assert config.read_text() == "# edited\n"

    def test_init_force_overwrites(self, workdir: Path) -> None:
        """Test init --force replaces existing files."""
        runner.invoke(app, ["init"])
        config = workdir / ".vigil" / "config.yaml"
        config.write_text("# edited\n")

        result = runner.invoke(app, ["init", "--force"])

        assert result.exit_code == 0
        assert "llm:" in config.read_text()


class TestVigilVersion:
    """Integration tests for --version."""

    def test_version(self) -> None:
        """Test --version prints the package version."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout
