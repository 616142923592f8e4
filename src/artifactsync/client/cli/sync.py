"""Sync commands for the artifactsync CLI.

Commands:
- push: Upload the current content of one target now
- run: Watch target sources and sync continuously
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import click

from artifactsync.client.cli.config import ConfigError, load_config
from artifactsync.client.cli.engine import open_scheduler
from artifactsync.client.cli.status import format_status
from artifactsync.client.sync import ArtifactWatcher, UnknownTargetError

logger = logging.getLogger(__name__)


@click.command()
@click.argument("target")
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--timeout",
    type=float,
    default=300.0,
    show_default=True,
    help="Seconds to wait for the upload.",
)
def push(target: str, file: str | None, timeout: float) -> None:
    """Upload FILE (or the target's source file) to TARGET now.

    The upload skips the debounce window. If it fails with a retryable
    error the operation stays queued for the next 'artifactsync run'.
    """
    try:
        with open_scheduler(load_config()) as scheduler:
            resolved = next((t for t in scheduler.targets if t.name == target), None)
            if resolved is None:
                raise UnknownTargetError(target)

            source = file or resolved.source_path
            if not source:
                click.echo(
                    f"Error: target '{target}' has no source file; pass FILE explicitly.",
                    err=True,
                )
                sys.exit(1)

            content = Path(source).read_bytes()
            scheduler.start(run_ticker=False)
            scheduler.debounce(resolved, 0.0)
            operation = scheduler.report_change(resolved, content)
            scheduler.tick()
            if not scheduler.wait_idle(timeout):
                click.echo(f"Error: upload still running after {timeout:.0f}s", err=True)
                sys.exit(1)
            result = scheduler.status(resolved)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except UnknownTargetError:
        click.echo(f"Error: unknown target '{target}'", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Error: cannot read source: {e}", err=True)
        sys.exit(1)

    click.echo(format_status(result))
    if result.pending_count:
        click.echo(
            f"Upload of {operation.size} bytes did not complete; it stays queued.",
            err=True,
        )
        sys.exit(2 if result.alert else 1)


@click.command()
@click.option("--no-scan", is_flag=True, help="Do not report source files at startup.")
def run(no_scan: bool) -> None:
    """Watch target source files and sync them until interrupted.

    Pending uploads left from earlier runs are resumed at startup.
    """
    try:
        with open_scheduler(load_config()) as scheduler:
            watcher = ArtifactWatcher(scheduler.targets, scheduler.report_change)
            if not watcher.sources:
                click.echo("Warning: no target has a source file; nothing to watch.", err=True)

            scheduler.start()
            if not no_scan:
                watcher.scan()

            stop = threading.Event()
            with watcher:
                click.echo(
                    f"Syncing {len(scheduler.targets)} targets "
                    f"({len(watcher.sources)} watched). Press Ctrl+C to stop."
                )
                try:
                    stop.wait()
                except KeyboardInterrupt:
                    click.echo("\nStopping...")
            logger.info("Shutting down, waiting for in-flight uploads")
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
