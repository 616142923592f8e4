"""Setup commands for the artifactsync CLI.

Commands:
- init: Configure the remote store
- add-target: Add or replace a mirrored artifact
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from artifactsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from artifactsync.client.sync.types import ContentKind, SyncTarget


@click.command()
@click.option("--remote-url", prompt="Remote store URL", help="Base URL of the remote store.")
@click.option(
    "--token",
    prompt="Access token",
    hide_input=True,
    default="",
    help="Bearer token for the remote store.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing configuration.")
def init(remote_url: str, token: str, force: bool) -> None:
    """Configure the remote store.

    Targets already configured are kept.
    """
    config = load_config()
    if config.get("remote_url") and not force:
        click.echo(
            f"Error: artifactsync already initialized ({get_config_file()}). "
            "Use --force to overwrite.",
            err=True,
        )
        sys.exit(1)

    config["remote_url"] = remote_url.rstrip("/")
    config["token"] = token
    config.setdefault("targets", [])
    save_config(config)

    click.echo(f"Configuration written to {get_config_dir()}")
    click.echo(f"Remote store: {config['remote_url']}")


@click.command("add-target")
@click.argument("name")
@click.argument("remote_path")
@click.option(
    "--source",
    "source_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Local file watched by 'artifactsync run'.",
)
@click.option(
    "--kind",
    type=click.Choice([kind.value for kind in ContentKind]),
    default=ContentKind.WHOLE_REPLACE.value,
    show_default=True,
    help="How the content evolves.",
)
@click.option("--replace", is_flag=True, help="Replace a target with the same name.")
def add_target(
    name: str,
    remote_path: str,
    source_path: str | None,
    kind: str,
    replace: bool,
) -> None:
    """Add a target NAME mirrored to REMOTE_PATH."""
    config = load_config()
    if not config.get("remote_url"):
        click.echo("Error: artifactsync not initialized. Run 'artifactsync init' first.", err=True)
        sys.exit(1)

    targets = [entry for entry in config.get("targets", []) if entry.get("name") != name]
    if len(targets) != len(config.get("targets", [])) and not replace:
        click.echo(f"Error: target '{name}' already exists. Use --replace to overwrite.", err=True)
        sys.exit(1)

    target = SyncTarget(
        name=name,
        remote_path=remote_path.lstrip("/"),
        kind=ContentKind(kind),
        source_path=str(Path(source_path).expanduser().resolve()) if source_path else None,
    )
    targets.append(target.to_dict())
    config["targets"] = targets
    save_config(config)

    click.echo(f"Target '{name}' -> {target.remote_path} ({target.kind.value})")
