"""Pytest configuration for CLI integration tests."""

from __future__ import annotations

# Re-export local CLI fixtures
from tests.integration.cli.fixtures import home, initialized, remote, runner

__all__ = [
    "home",
    "initialized",
    "remote",
    "runner",
]
