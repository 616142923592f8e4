"""Operator commands for the artifactsync CLI.

Commands:
- status: Show sync status of targets
- reset: Clear the alert of a target
"""

from __future__ import annotations

import json
import sys
from datetime import datetime

import click

from artifactsync.client.cli.config import ConfigError, load_config
from artifactsync.client.cli.engine import open_scheduler
from artifactsync.client.sync.types import TargetStatus, UnknownTargetError


def format_status(status: TargetStatus) -> str:
    """Render one target status as a line of text."""
    if status.last_synced_at is None:
        synced = "never synced"
    else:
        when = datetime.fromtimestamp(status.last_synced_at).isoformat(timespec="seconds")
        synced = f"synced {when} ({(status.last_digest or '')[:8]})"

    parts = [f"{status.target}: {synced}"]
    if status.in_flight:
        parts.append("uploading")
    if status.pending_count:
        parts.append(f"{status.pending_count} pending")
    if status.alert:
        failure = status.failure_class.value if status.failure_class else "fatal"
        parts.append(f"ALERT [{failure}] {status.last_error}")
    elif status.last_error:
        parts.append(f"retrying after {status.attempts} failures: {status.last_error}")
    return ", ".join(parts)


@click.command()
@click.argument("target", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output JSON.")
def status(target: str | None, as_json: bool) -> None:
    """Show sync status of all targets, or of TARGET."""
    try:
        with open_scheduler(load_config()) as scheduler:
            statuses = [scheduler.status(target)] if target else scheduler.statuses()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except UnknownTargetError:
        click.echo(f"Error: unknown target '{target}'", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in statuses], indent=2))
        return

    if not statuses:
        click.echo("No targets configured. Run 'artifactsync add-target' first.")
        return

    for entry in statuses:
        click.echo(format_status(entry))

    if any(entry.alert for entry in statuses):
        sys.exit(2)


@click.command()
@click.argument("target")
def reset(target: str) -> None:
    """Clear the alert of TARGET so its pending upload is retried."""
    try:
        with open_scheduler(load_config()) as scheduler:
            had_pending = scheduler.reset(target)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except UnknownTargetError:
        click.echo(f"Error: unknown target '{target}'", err=True)
        sys.exit(1)

    if had_pending:
        click.echo(f"Reset '{target}': pending upload will be retried.")
    else:
        click.echo(f"Nothing to reset for '{target}'.")
