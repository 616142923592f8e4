"""Fixtures for CLI integration tests.

The CLI builds its HTTP store from the saved configuration; these
fixtures swap it for an in-memory store so commands run end to end
without a server.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from artifactsync.client.cli import cli
from artifactsync.client.memory import InMemoryRemoteStore


class ClosableStore(InMemoryRemoteStore):
    """In-memory store with the close() the CLI calls on exit."""

    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the configuration directory at a temporary path."""
    config_dir = tmp_path / "home"
    monkeypatch.setenv("ARTIFACTSYNC_HOME", str(config_dir))
    return config_dir


@pytest.fixture
def remote(monkeypatch: pytest.MonkeyPatch) -> ClosableStore:
    """Replace the HTTP store built by the CLI with an in-memory one."""
    store = ClosableStore()
    monkeypatch.setattr(
        "artifactsync.client.cli.engine.HTTPRemoteStore", lambda config: store
    )
    return store


@pytest.fixture
def initialized(runner: CliRunner, home: Path) -> Path:
    """Configuration directory after 'artifactsync init'."""
    result = runner.invoke(
        cli, ["init", "--remote-url", "https://store.example.com/", "--token", "secret"]
    )
    assert result.exit_code == 0, result.output
    return home
