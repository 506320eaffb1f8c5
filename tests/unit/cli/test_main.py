"""Unit tests for the req CLI.

Tests exercise commands end to end against a temporary database and check
output and exit codes.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner, Result

from req_core.cli.main import cli
from req_core.cli.utils import ExitCode

Invoke = Callable[..., Result]


@pytest.fixture
def invoke(cli_runner: CliRunner, db_path: Path) -> Invoke:
    def _invoke(*args: str) -> Result:
        return cli_runner.invoke(cli, ["--db", str(db_path), *args])

    return _invoke


@pytest.fixture
def seeded(invoke: Invoke) -> Invoke:
    assert invoke("create", "AUTH", "functional", "Users can log in", "-a", "Valid login").exit_code == 0
    assert invoke("create", "AUTH", "functional", "Users can log out", "--depends", "AUTH-001").exit_code == 0
    return invoke


class TestRoot:
    @pytest.mark.requirement("CLI-ROOT")
    def test_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("approve", "coverage", "dep", "domain", "import", "purge", "scan"):
            assert command in result.output

    @pytest.mark.requirement("CLI-ROOT")
    def test_init_is_idempotent(self, invoke: Invoke, db_path: Path) -> None:
        assert invoke("init").exit_code == 0
        assert invoke("init").exit_code == 0
        assert db_path.exists()

        result = invoke("module", "list")
        assert result.output.startswith("default")

    @pytest.mark.requirement("CLI-ROOT")
    def test_env_selects_module(self, cli_runner: CliRunner, db_path: Path) -> None:
        cli_runner.invoke(
            cli,
            ["--db", str(db_path), "create", "BIZ", "functional", "Invoice"],
            env={"REQ_MODULE": "billing"},
        )
        result = cli_runner.invoke(cli, ["--db", str(db_path), "--module", "billing", "list"])

        assert "BIZ-001" in result.output

    @pytest.mark.requirement("CLI-ROOT")
    def test_main_entry_point(self, db_path: Path) -> None:
        from req_core.cli.main import main

        with pytest.raises(SystemExit) as exc_info:
            main(["--db", str(db_path), "show", "AUTH-001"])

        assert exc_info.value.code == ExitCode.NOT_FOUND


class TestRequirementCommands:
    @pytest.mark.requirement("CLI-REQ")
    def test_create_prints_display_id(self, invoke: Invoke) -> None:
        result = invoke("create", "auth", "functional", "Users can log in", "-a", "ok")

        assert result.exit_code == 0
        assert "Created AUTH-001" in result.output

    @pytest.mark.requirement("CLI-REQ")
    def test_create_without_acceptance_warns(self, invoke: Invoke) -> None:
        result = invoke("create", "AUTH", "functional", "Draft")

        assert result.exit_code == 0
        assert "no acceptance criteria" in result.output

    @pytest.mark.requirement("CLI-EXIT")
    def test_validation_exit_code(self, invoke: Invoke) -> None:
        result = invoke("create", "NOPE", "functional", "x")

        assert result.exit_code == ExitCode.VALIDATION_ERROR
        assert "Error: Invalid category" in result.output

    @pytest.mark.requirement("CLI-EXIT")
    def test_out_of_range_id_is_validation_error(self, seeded: Invoke) -> None:
        result = seeded("show", "AUTH-99999999999999999999")

        assert result.exit_code == ExitCode.VALIDATION_ERROR
        assert "too large" in result.output

    @pytest.mark.requirement("CLI-EXIT")
    def test_not_found_exit_code(self, seeded: Invoke) -> None:
        result = seeded("show", "AUTH-042")

        assert result.exit_code == ExitCode.NOT_FOUND
        assert "requirement not found: AUTH-042" in result.output

    @pytest.mark.requirement("CLI-EXIT")
    def test_conflict_exit_code(self, seeded: Invoke) -> None:
        result = seeded("dep", "add", "AUTH-001", "AUTH-002")

        assert result.exit_code == ExitCode.CONFLICT
        assert "cycle" in result.output

    @pytest.mark.requirement("CLI-EXIT")
    def test_state_exit_code(self, seeded: Invoke) -> None:
        result = seeded("revert", "AUTH-001")

        assert result.exit_code == ExitCode.STATE_ERROR
        assert "state=proposed" in result.output

    @pytest.mark.requirement("CLI-REQ")
    def test_show_json(self, seeded: Invoke) -> None:
        result = seeded("show", "AUTH-002", "--output", "json")

        data = json.loads(result.stdout)
        assert data["summary"] == "Users can log out"
        assert data["depends"] == ["AUTH-001"]
        assert data["approval_status"] == "proposed"

    @pytest.mark.requirement("CLI-REQ")
    def test_list_text_and_filters(self, seeded: Invoke) -> None:
        seeded("create", "DATA", "constraint", "Retention", "-p", "must")

        all_rows = seeded("list").stdout.splitlines()
        must_rows = seeded("list", "--priority", "must").stdout.splitlines()

        assert [line.split()[0] for line in all_rows] == ["AUTH-001", "AUTH-002", "DATA-001"]
        assert [line.split()[0] for line in must_rows] == ["DATA-001"]

    @pytest.mark.requirement("CLI-REQ")
    def test_edit_update_delete_restore(self, seeded: Invoke) -> None:
        assert seeded("edit", "AUTH-001", "priority", "must").exit_code == 0
        assert seeded("update", "AUTH-001", "--summary", "Sign in", "-a", "Works").exit_code == 0
        assert seeded("delete", "AUTH-001").exit_code == 0
        assert "AUTH-001" not in seeded("list").output
        assert seeded("restore", "AUTH-001").exit_code == 0

        data = json.loads(seeded("show", "AUTH-001", "-o", "json").stdout)
        assert (data["priority"], data["summary"], data["acceptance"], data["status"]) == (
            "must",
            "Sign in",
            ["Works"],
            "active",
        )

    @pytest.mark.requirement("CLI-REQ")
    def test_purge_keeps_recent_deletions(self, seeded: Invoke) -> None:
        seeded("delete", "AUTH-002")

        result = seeded("purge", "--older-than", "30")

        assert result.exit_code == 0
        assert "Purged 0 requirement(s)" in result.output
        assert "AUTH-002" in seeded("list", "--include-deleted").stdout

    @pytest.mark.requirement("CLI-REQ")
    def test_purge_rejects_negative_age(self, seeded: Invoke) -> None:
        assert seeded("purge", "--older-than", "-1").exit_code != 0


class TestApprovalCommands:
    @pytest.mark.requirement("CLI-APPROVAL")
    def test_approve_edit_diff_revert(self, seeded: Invoke) -> None:
        assert seeded("approve", "AUTH-001").exit_code == 0
        assert seeded("diff", "AUTH-001").exit_code == ExitCode.STATE_ERROR

        seeded("edit", "AUTH-001", "summary", "Users can sign in")
        diff = seeded("diff", "AUTH-001")
        assert diff.exit_code == 0
        assert "- Users can log in" in diff.output
        assert "+ Users can sign in" in diff.output

        assert seeded("revert", "AUTH-001").exit_code == 0
        data = json.loads(seeded("show", "AUTH-001", "-o", "json").stdout)
        assert data["summary"] == "Users can log in"
        assert data["approval_status"] == "approved"

    @pytest.mark.requirement("CLI-APPROVAL")
    def test_withdraw(self, seeded: Invoke) -> None:
        seeded("approve", "AUTH-001")

        assert seeded("withdraw", "AUTH-001").exit_code == 0
        assert seeded("withdraw", "AUTH-001").exit_code == ExitCode.STATE_ERROR


class TestAssociationCommands:
    @pytest.mark.requirement("CLI-ASSOC")
    def test_tags(self, seeded: Invoke) -> None:
        assert seeded("tag", "add", "AUTH-001", "security").exit_code == 0
        assert seeded("tag", "add", "AUTH-001", "security").exit_code == 0
        assert json.loads(seeded("show", "AUTH-001", "-o", "json").stdout)["tags"] == ["security"]
        assert seeded("tag", "remove", "AUTH-001", "security").exit_code == 0

    @pytest.mark.requirement("CLI-ASSOC")
    def test_domains(self, seeded: Invoke) -> None:
        assert seeded("domain", "add", "identity", "Identity").exit_code == 0
        assert seeded("domain", "add", "identity", "Again").exit_code == ExitCode.CONFLICT
        assert seeded("domain", "assign", "AUTH-001", "identity").exit_code == 0
        assert seeded("domain", "assign", "AUTH-001", "nowhere").exit_code == ExitCode.NOT_FOUND

        listing = json.loads(seeded("domain", "list", "-o", "json").stdout)
        assert listing[0]["reference"] == "identity"
        assert listing[0]["requirement_count"] == 1

        assert seeded("domain", "unassign", "AUTH-001", "identity").exit_code == 0
        assert seeded("domain", "remove", "identity").exit_code == 0

    @pytest.mark.requirement("CLI-ASSOC")
    def test_dependencies_and_orphans(self, seeded: Invoke) -> None:
        seeded("create", "DATA", "constraint", "Retention")
        assert seeded("dep", "add", "AUTH-001", "DATA-001").exit_code == 0
        assert seeded("dep", "add", "AUTH-001", "AUTH-001").exit_code == ExitCode.CONFLICT
        assert seeded("dep", "add", "AUTH-999", "AUTH-999").exit_code == ExitCode.NOT_FOUND
        seeded("edit", "DATA-001", "status", "deprecated")

        orphans = json.loads(seeded("dep", "orphans", "-o", "json").stdout)
        assert [(o["location"], o["reference"]) for o in orphans] == [("AUTH-001", "DATA-001")]

        assert seeded("dep", "remove", "AUTH-001", "DATA-001").exit_code == 0
        assert seeded("dep", "remove", "AUTH-001", "DATA-001").exit_code == ExitCode.NOT_FOUND


class TestTransferCommands:
    @pytest.mark.requirement("CLI-TRANSFER")
    def test_export_import(self, seeded: Invoke, tmp_path: Path) -> None:
        export_file = tmp_path / "export.yaml"
        assert seeded("export", "--file", str(export_file)).exit_code == 0
        assert yaml.safe_load(export_file.read_text())["module"] == "default"

        result = seeded("import", str(export_file), "--into", "copy")

        assert result.exit_code == 0
        assert "2 created" in result.output
        assert "AUTH-002" in seeded("--module", "copy", "list").output

    @pytest.mark.requirement("CLI-TRANSFER")
    def test_export_to_stdout(self, seeded: Invoke) -> None:
        data = yaml.safe_load(seeded("export").stdout)
        assert [r["id"] for r in data["requirements"]] == ["AUTH-001", "AUTH-002"]

    @pytest.mark.requirement("CLI-TRANSFER")
    def test_invalid_import(self, invoke: Invoke, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("- {id: AUTH-001, type: nonsense, summary: x}\n")

        result = invoke("import", str(bad))

        assert result.exit_code == ExitCode.VALIDATION_ERROR


class TestTraceCommands:
    @pytest.mark.requirement("CLI-TRACE")
    def test_scan_json(self, seeded: Invoke, sample_corpus: Path) -> None:
        result = seeded("scan", str(sample_corpus), "-o", "json")

        data = json.loads(result.stdout)
        assert set(data["mappings"]) == {"AUTH-001", "AUTH-002"}
        assert [o["reference"] for o in data["orphan_tags"]] == ["AUTH-099"]

    @pytest.mark.requirement("CLI-TRACE")
    def test_coverage_text(self, seeded: Invoke, sample_corpus: Path) -> None:
        result = seeded("coverage", str(sample_corpus))

        assert result.exit_code == 0
        assert "fully-covered" in result.output
        assert "Fully covered: 50.0% of 2 requirement(s)" in result.output
        assert "AUTH-099" in result.output

    @pytest.mark.requirement("CLI-TRACE")
    def test_coverage_threshold(self, seeded: Invoke, sample_corpus: Path) -> None:
        assert seeded("coverage", str(sample_corpus), "--threshold", "50").exit_code == 0
        assert seeded("coverage", str(sample_corpus), "--threshold", "75").exit_code == ExitCode.GENERAL_ERROR

    @pytest.mark.requirement("CLI-TRACE")
    def test_coverage_json_include_inactive(self, seeded: Invoke, sample_corpus: Path) -> None:
        seeded("delete", "AUTH-002")

        default = json.loads(seeded("coverage", str(sample_corpus), "-o", "json").stdout)
        full = json.loads(seeded("coverage", str(sample_corpus), "-o", "json", "--include-inactive").stdout)

        assert default["total_requirements"] == 1
        assert full["total_requirements"] == 2

    @pytest.mark.requirement("CLI-CHECK")
    def test_check(self, seeded: Invoke) -> None:
        result = seeded("check")
        assert result.exit_code == 0
        assert "AUTH-002" in result.output

        assert seeded("check", "--strict").exit_code == ExitCode.GENERAL_ERROR
