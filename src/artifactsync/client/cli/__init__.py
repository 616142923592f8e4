"""Command-line interface for artifactsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Configure the remote store
- add-target: Add a mirrored artifact
- status: Show sync status of targets
- reset: Clear the alert of a target
- push: Upload the current content of a target now
- run: Watch target sources and sync continuously
"""

from __future__ import annotations

import click

from artifactsync.client.cli.config import (
    ConfigError,
    build_engine_config,
    build_remote_config,
    get_config_dir,
    get_config_file,
    load_config,
    load_targets,
    save_config,
)
from artifactsync.client.cli.engine import setup_logging
from artifactsync.client.cli.status import reset, status
from artifactsync.client.cli.sync import push, run
from artifactsync.client.cli.targets import add_target, init


@click.group()
@click.version_option(package_name="artifactsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """artifactsync - Mirror process-generated artifacts to a remote store."""
    setup_logging(verbose)


# Setup commands
cli.add_command(init)
cli.add_command(add_target)

# Operator commands
cli.add_command(status)
cli.add_command(reset)

# Sync commands
cli.add_command(push)
cli.add_command(run)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "ConfigError",
    "build_engine_config",
    "build_remote_config",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "load_targets",
    "save_config",
]
