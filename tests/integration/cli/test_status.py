"""Tests for 'artifactsync status' and 'artifactsync reset' commands."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from artifactsync.client.cli import cli

from tests.integration.cli.fixtures import ClosableStore


class TestStatusCommand:
    """Tests for 'artifactsync status' and 'artifactsync reset'."""

    def test_status_requires_init(self, runner: CliRunner, home: Path) -> None:
        """Status without a remote is an error."""
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 1
        assert "artifactsync init" in result.output

    def test_status_no_targets(self, runner: CliRunner, initialized: Path, remote: ClosableStore) -> None:
        """Status explains when nothing is configured."""
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "No targets configured" in result.output
        assert remote.calls == []
        assert remote.closed

    def test_status_json(self, runner: CliRunner, initialized: Path, remote: ClosableStore) -> None:
        """Status --json lists every target without remote calls."""
        runner.invoke(cli, ["add-target", "b-target", "b.json"])
        runner.invoke(cli, ["add-target", "a-target", "a.json"])

        result = runner.invoke(cli, ["status", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [entry["target"] for entry in data] == ["a-target", "b-target"]
        assert data[0]["last_synced_at"] is None
        assert remote.calls == []

    def test_status_unknown_target(self, runner: CliRunner, initialized: Path, remote: ClosableStore) -> None:
        """An unknown target name is an error."""
        result = runner.invoke(cli, ["status", "nope"])
        assert result.exit_code == 1
        assert "unknown target 'nope'" in result.output

    def test_reset_nothing_pending(self, runner: CliRunner, initialized: Path, remote: ClosableStore) -> None:
        """Reset reports when there is nothing to retry."""
        runner.invoke(cli, ["add-target", "run-log", "logs/run.log"])

        result = runner.invoke(cli, ["reset", "run-log"])

        assert result.exit_code == 0
        assert "Nothing to reset for 'run-log'" in result.output
