"""Shared configuration classes for artifactsync.

This module defines the connection settings for the remote store and the
tunables of the synchronization engine.
"""

from __future__ import annotations

from dataclasses import dataclass

from artifactsync.core.chunking import DEFAULT_CHUNK_SIZE, DEFAULT_UPLOAD_THRESHOLD


@dataclass
class RemoteConfig:
    """Configuration for connecting to a remote content store.

    Attributes:
        base_url: Base URL of the store (e.g., "https://store.example.com").
        token: Static access token (used when no token provider is given).
        timeout: Deadline for each remote call in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    base_url: str
    token: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize base URL."""
        self.base_url = self.base_url.rstrip("/")


@dataclass
class EngineConfig:
    """Tunables for the synchronization engine.

    Attributes:
        debounce_window: Seconds a change waits for further changes to coalesce.
        debounce_max_wait: Upper bound on how long a busy target can be deferred.
        tick_interval: Seconds between scheduler scans of the offline queue.
        max_workers: Maximum concurrent dispatched targets.
        upload_threshold: Payloads above this size are uploaded in chunks.
        chunk_size: Size of each range in a chunked upload.
        max_attempts: Attempts per remote call and per operation before fatal.
        initial_backoff: Base retry delay in seconds.
        max_backoff: Cap on the retry delay in seconds.
        backoff_multiplier: Growth factor of the retry delay.
        max_conflict_rounds: Metadata refreshes allowed after a rejected write.
    """

    debounce_window: float = 2.0
    debounce_max_wait: float = 30.0
    tick_interval: float = 5.0
    max_workers: int = 4
    upload_threshold: int = DEFAULT_UPLOAD_THRESHOLD
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_attempts: int = 5
    initial_backoff: float = 1.0
    max_backoff: float = 60.0
    backoff_multiplier: float = 2.0
    max_conflict_rounds: int = 3

    def __post_init__(self) -> None:
        """Validate sizes and counts."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_conflict_rounds < 1:
            raise ValueError("max_conflict_rounds must be at least 1")
        if self.debounce_window < 0 or self.debounce_max_wait < 0:
            raise ValueError("debounce settings must not be negative")
        if self.upload_threshold < 0:
            raise ValueError("upload_threshold must not be negative")
