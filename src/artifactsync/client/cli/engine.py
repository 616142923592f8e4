"""Engine assembly shared by CLI commands.

This module provides:
- open_scheduler: Builds the store, queue, state store and scheduler from config
- setup_logging: Configures the artifactsync logger
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from artifactsync.client.api import HTTPRemoteStore
from artifactsync.client.cli.config import (
    build_engine_config,
    build_remote_config,
    get_queue_db,
    get_state_db,
    load_targets,
)
from artifactsync.client.state import SyncStateStore
from artifactsync.client.sync import OfflineQueue, SyncScheduler

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Send artifactsync logs to stderr.

    Args:
        verbose: Log at DEBUG instead of INFO.
    """
    package_logger = logging.getLogger("artifactsync")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False


@contextmanager
def open_scheduler(config: dict[str, Any]) -> Iterator[SyncScheduler]:
    """Build a scheduler from configuration and release its resources after use.

    The scheduler is not started; callers that dispatch work start it and
    shut it down themselves.

    Args:
        config: Loaded configuration.

    Yields:
        The scheduler, with every configured target registered.

    Raises:
        ConfigError: If the configuration is incomplete or invalid.
    """
    remote_config = build_remote_config(config)
    engine_config = build_engine_config(config)
    targets = load_targets(config)

    store = HTTPRemoteStore(remote_config)
    queue = OfflineQueue(get_queue_db())
    states = SyncStateStore(get_state_db())
    scheduler = SyncScheduler(store, queue, states, config=engine_config, targets=targets)
    try:
        yield scheduler
    finally:
        scheduler.shutdown()
        queue.close()
        states.close()
        store.close()
