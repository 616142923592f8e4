"""Configuration utilities for the artifactsync CLI.

This module provides shared configuration functions used across CLI commands.

Layout of the configuration directory:
    config.json   remote_url, token, engine overrides, targets
    queue.db      offline queue
    state.db      sync state
"""

from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path
from typing import Any

from artifactsync.client.sync.types import SyncTarget
from artifactsync.core.config import EngineConfig, RemoteConfig

CONFIG_DIR_ENV = "ARTIFACTSYNC_HOME"


class ConfigError(Exception):
    """Configuration is missing or invalid."""


def get_config_dir() -> Path:
    """Get the configuration directory for artifactsync.

    Returns:
        Path from $ARTIFACTSYNC_HOME, or ~/.artifactsync.
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".artifactsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_queue_db() -> Path:
    """Get the path to the offline queue database."""
    return get_config_dir() / "queue.db"


def get_state_db() -> Path:
    """Get the path to the sync state database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_targets(config: dict[str, Any] | None = None) -> list[SyncTarget]:
    """Get the configured targets.

    Args:
        config: Loaded configuration (read from disk if None).
    """
    if config is None:
        config = load_config()
    try:
        return [SyncTarget.from_dict(entry) for entry in config.get("targets", [])]
    except (KeyError, ValueError) as e:
        raise ConfigError(f"Invalid target in configuration: {e}") from e


def build_remote_config(config: dict[str, Any]) -> RemoteConfig:
    """Build the remote store configuration.

    Raises:
        ConfigError: If no remote is configured.
    """
    if not config.get("remote_url"):
        raise ConfigError("No remote configured. Run 'artifactsync init' first.")
    return RemoteConfig(
        base_url=config["remote_url"],
        token=config.get("token", ""),
        timeout=float(config.get("timeout", 30.0)),
        verify_ssl=bool(config.get("verify_ssl", True)),
    )


def build_engine_config(config: dict[str, Any]) -> EngineConfig:
    """Build engine settings from the "engine" section.

    Raises:
        ConfigError: On unknown keys or invalid values.
    """
    overrides = dict(config.get("engine", {}))
    known = {f.name for f in dataclasses.fields(EngineConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigError(f"Unknown engine settings: {', '.join(unknown)}")
    try:
        return EngineConfig(**overrides)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid engine settings: {e}") from e
