"""
Tests for the sprintkeeper command line.
"""
import pytest
from unittest.mock import MagicMock
from typer.testing import CliRunner

from sprintkeeper.cli.main import app
from sprintkeeper.core.exceptions import IntegrityViolation

from conftest import CYCLE, by_status, load_notifications, load_sprints


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def wired(lifecycle, mocker):
    mocker.patch("sprintkeeper.cli.main.build_engine", return_value=lifecycle)
    return lifecycle


class TestCommands:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "SprintKeeper v0.1.0" in result.output

    def test_reconcile_creates_sprints(self, cli_runner, wired, test_engine):
        result = cli_runner.invoke(app, ["reconcile", "alice"])

        assert result.exit_code == 0
        assert "sprint 40 is current" in result.output
        assert "31 created" in result.output
        assert by_status(load_sprints(test_engine, "alice"), "current") == [40]

    def test_reconcile_twice_reports_no_transition(self, cli_runner, wired):
        cli_runner.invoke(app, ["reconcile", "alice"])
        result = cli_runner.invoke(app, ["reconcile", "alice"])

        assert result.exit_code == 0
        assert "no transition needed" in result.output

    def test_reconcile_failure_exits_non_zero(self, cli_runner, mocker):
        engine = MagicMock()
        engine.reconcile.side_effect = IntegrityViolation("two current sprints", owner_id="alice")
        mocker.patch("sprintkeeper.cli.main.build_engine", return_value=engine)

        result = cli_runner.invoke(app, ["reconcile", "alice"])

        assert result.exit_code == 1
        assert "IntegrityViolation" in result.output

    def test_advance_every_owner(self, cli_runner, wired, clock):
        wired.reconcile("alice")
        wired.reconcile("bob")
        clock.advance(CYCLE)

        result = cli_runner.invoke(app, ["advance"])

        assert result.exit_code == 0
        assert "Sprint transition to sprint 41" in result.output
        assert "Owners processed: 2" in result.output
        assert "Sprint updates:   8" in result.output

    def test_advance_reports_failures(self, cli_runner, wired):
        result = cli_runner.invoke(app, ["advance", "--owner", "alice", "--owner", " "])

        assert result.exit_code == 1
        assert "ConfigurationError" in result.output

    def test_summary(self, cli_runner, wired):
        result = cli_runner.invoke(app, ["summary", "alice"])

        assert result.exit_code == 0
        assert "Sprint 40 (7 days remaining)" in result.output
        assert "Uncommitted: 6" in result.output
        assert "BUILD_MINIMUM_NOT_MET" in result.output

    def test_init_db(self, cli_runner, mocker):
        init = mocker.patch("sprintkeeper.utils.db.init_db")

        result = cli_runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        init.assert_called_once_with()

    def test_complete_dashboard(self, cli_runner, wired, test_engine):
        wired.reconcile("alice")

        result = cli_runner.invoke(app, ["complete", "alice", "--user-name", "Alice Doe"])

        assert result.exit_code == 0
        assert "dashboard completion sent" in result.output
        (entry,) = load_notifications(test_engine, "alice")
        assert entry.payload["user_name"] == "Alice Doe"

    def test_complete_unknown_owner(self, cli_runner, wired):
        result = cli_runner.invoke(app, ["complete", "nobody"])

        assert result.exit_code == 1
        assert "OwnerNotFoundError" in result.output
