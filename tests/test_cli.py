"""Tests for the command line interface."""

import json

import pytest

from absence_engine.cli import AbsenceCli


@pytest.fixture
def cli() -> AbsenceCli:
    return AbsenceCli()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'absence.db'}"


class TestWorkingDaysCommand:
    """Test the working-days command."""

    def test_text_output(self, cli, capsys):
        """Text output names the range and the count."""
        code = cli.run(
            ["working-days", "--start", "2025-03-03", "--end", "2025-03-14", "--holiday", "2025-03-10"]
        )

        assert code == 0
        assert capsys.readouterr().out.strip() == "2025-03-03 .. 2025-03-14: 9 working day(s)"

    def test_json_output(self, cli, capsys):
        """JSON output is machine readable."""
        code = cli.run(
            ["working-days", "--start", "2025-03-03", "--end", "2025-03-03", "--half-day", "--format", "json"]
        )

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["working_days"] == "0.5"
        assert data["half_day"] is True

    def test_reversed_range_is_an_error(self, cli, capsys):
        """Engine errors exit with code 2."""
        code = cli.run(["working-days", "--start", "2025-03-07", "--end", "2025-03-03"])

        assert code == 2
        assert "ERROR" in capsys.readouterr().err

    def test_no_command_prints_help(self, cli, capsys):
        """Without a command the CLI prints usage and fails."""
        assert cli.run([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


class TestDatabaseCommands:
    """Test init-db and quota against a file database."""

    def test_init_db_creates_tables(self, cli, capsys, database_url):
        """All absence tables are created."""
        code = cli.run(["init-db", "--database-url", database_url])

        assert code == 0
        out = capsys.readouterr().out
        assert "absence_request" in out
        assert "absence_quota" in out
        assert "approval_step" in out

    def test_quota_for_new_employee(self, cli, capsys, database_url):
        """An employee without a quota row shows the default entitlement."""
        cli.run(["init-db", "--database-url", database_url])
        capsys.readouterr()

        code = cli.run(
            ["quota", "--employee-id", "emp-1", "--year", "2025", "--database-url", database_url, "--format", "json"]
        )

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["employee_id"] == "emp-1"
        assert data["absence_type"] == "vacation"
        assert data["used"] == "0"
        assert data["remaining"] == data["entitlement"]

    def test_quota_text_output(self, cli, capsys, database_url):
        """Text output lists the balance lines."""
        cli.run(["init-db", "--database-url", database_url])
        capsys.readouterr()

        code = cli.run(
            ["quota", "--employee-id", "emp-1", "--year", "2025", "--type", "special_vacation", "--database-url", database_url]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "special_vacation" in out
        assert "Remaining:" in out
