"""Tests for 'artifactsync push' command."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from artifactsync.client.api import FatalRemoteError
from artifactsync.client.cli import cli

from tests.integration.cli.fixtures import ClosableStore


class TestPushCommand:
    """Tests for 'artifactsync push'."""

    def test_push_file(
        self, runner: CliRunner, initialized: Path, remote: ClosableStore, tmp_path: Path
    ) -> None:
        """Push uploads the file right away and shows the new status."""
        source = tmp_path / "status.json"
        source.write_bytes(b'{"ok": true}')
        runner.invoke(cli, ["add-target", "dashboard-status", "status/dashboard.json"])

        result = runner.invoke(cli, ["push", "dashboard-status", str(source)])

        assert result.exit_code == 0, result.output
        assert remote.content("status/dashboard.json") == b'{"ok": true}'
        assert "dashboard-status: synced" in result.output

        status = runner.invoke(cli, ["status", "--json"])
        (entry,) = json.loads(status.output)
        assert entry["pending_count"] == 0
        assert entry["last_digest"] is not None

    def test_push_uses_source(
        self, runner: CliRunner, initialized: Path, remote: ClosableStore, tmp_path: Path
    ) -> None:
        """Without FILE the target's source file is pushed."""
        source = tmp_path / "run.log"
        source.write_bytes(b"line 1\n")
        runner.invoke(cli, ["add-target", "run-log", "logs/run.log", "--source", str(source)])

        result = runner.invoke(cli, ["push", "run-log"])

        assert result.exit_code == 0, result.output
        assert remote.content("logs/run.log") == b"line 1\n"

    def test_push_without_source(
        self, runner: CliRunner, initialized: Path, remote: ClosableStore
    ) -> None:
        """A target without a source file needs FILE."""
        runner.invoke(cli, ["add-target", "run-log", "logs/run.log"])

        result = runner.invoke(cli, ["push", "run-log"])

        assert result.exit_code == 1
        assert "no source file" in result.output

    def test_push_unknown_target(
        self, runner: CliRunner, initialized: Path, remote: ClosableStore
    ) -> None:
        """Pushing an unknown target is an error."""
        result = runner.invoke(cli, ["push", "nope"])
        assert result.exit_code == 1
        assert "unknown target" in result.output

    def test_push_rejected_raises_alert(
        self, runner: CliRunner, initialized: Path, remote: ClosableStore, tmp_path: Path
    ) -> None:
        """A rejected upload stays queued, shows the alert and exits 2."""
        source = tmp_path / "status.json"
        source.write_bytes(b"{}")
        runner.invoke(cli, ["add-target", "dashboard-status", "status/dashboard.json"])
        remote.fail_next("put_object", FatalRemoteError("forbidden", 403))

        result = runner.invoke(cli, ["push", "dashboard-status", str(source)])

        assert result.exit_code == 2
        assert "ALERT [fatal]" in result.output
        assert "stays queued" in result.output

        status = runner.invoke(cli, ["status"])
        assert status.exit_code == 2
        assert "1 pending" in status.output

        reset = runner.invoke(cli, ["reset", "dashboard-status"])
        assert "will be retried" in reset.output
