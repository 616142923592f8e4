"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, UploadError: Exception classes
- SyncTarget: One mirrored artifact
- SyncOperation: One unit of pending work for a target
- SyncState: Last successful sync of a target
- OperationOutcome, OperationRecord: Dispatch results and audit trail
- TargetStatus: Operator-facing view of a target
- SchedulerState, SchedulerStats: Scheduler lifecycle and counters
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum, auto
from typing import Any

from artifactsync.core.chunking import get_content_digest
from artifactsync.core.types import ContentKind, FailureClass


class SyncError(Exception):
    """Base exception for sync errors."""


class UploadError(SyncError):
    """Failed to upload a payload."""


class UnknownTargetError(SyncError, KeyError):
    """Target name was never registered."""


@dataclass(frozen=True)
class SyncTarget:
    """One logical artifact mirrored to the remote store.

    Attributes:
        name: Stable logical name (e.g., "dashboard-status").
        remote_path: Object path in the remote store.
        kind: How the content evolves (whole-replace or append-growing).
        source_path: Optional local file the watcher reads content from.
    """

    name: str
    remote_path: str
    kind: ContentKind = ContentKind.WHOLE_REPLACE
    source_path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncTarget:
        """Create from a configuration dictionary."""
        return cls(
            name=data["name"],
            remote_path=data["remote_path"],
            kind=ContentKind(data.get("kind", ContentKind.WHOLE_REPLACE.value)),
            source_path=data.get("source_path"),
        )

    def to_dict(self) -> dict[str, str]:
        """Convert to a configuration dictionary."""
        data = {
            "name": self.name,
            "remote_path": self.remote_path,
            "kind": self.kind.value,
        }
        if self.source_path:
            data["source_path"] = self.source_path
        return data


@dataclass
class SyncOperation:
    """A pending upload of one content snapshot.

    The content and digest never change once created. A newer report for
    the same target supersedes the operation instead of mutating it.

    Attributes:
        target: Target this content belongs to.
        content: Content snapshot.
        digest: SHA-256 of content.
        sequence: Monotonic local sequence number.
        created_at: When the producer reported the content.
        attempts: Failed dispatches so far.
        last_error: Message of the last failure.
        failure_class: Class of the last failure.
        eligible_at: Not dispatched before this time (debounce or backoff).
        pending_since: When the target first became dirty since its last dispatch.
        in_flight: Whether a worker currently holds the operation.
        fatal: Whether the operation exhausted its attempts.
    """

    target: SyncTarget
    content: bytes = field(repr=False)
    digest: str
    sequence: int
    created_at: float
    attempts: int = 0
    last_error: str | None = None
    failure_class: FailureClass | None = None
    eligible_at: float = 0.0
    pending_since: float = 0.0
    in_flight: bool = False
    fatal: bool = False

    @classmethod
    def create(
        cls,
        target: SyncTarget,
        content: bytes,
        sequence: int,
        created_at: float | None = None,
    ) -> SyncOperation:
        """Create a new operation, computing the digest.

        Args:
            target: The target the content belongs to.
            content: Content snapshot.
            sequence: Sequence number from the queue.
            created_at: Report time (defaults to now).

        Returns:
            A new SyncOperation instance
        """
        now = time.time() if created_at is None else created_at
        return cls(
            target=target,
            content=bytes(content),
            digest=get_content_digest(content),
            sequence=sequence,
            created_at=now,
            eligible_at=now,
            pending_since=now,
        )

    @property
    def size(self) -> int:
        """Content size in bytes."""
        return len(self.content)

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"SyncOperation({self.target.name}, "
            f"seq={self.sequence}, "
            f"digest={self.digest[:8]}, "
            f"size={self.size})"
        )


@dataclass(frozen=True)
class SyncState:
    """Last known good sync of a target.

    Attributes:
        target: Target name.
        version: Remote version token at the last successful upload (or refresh).
        digest: Digest of the content that produced that version.
        synced_at: When the state was recorded.
        remote_modified: Remote last-modified time of that version.
    """

    target: str
    version: str
    digest: str
    synced_at: float
    remote_modified: float | None = None


class OperationOutcome(Enum):
    """Result of dispatching an operation."""

    COMPLETED = "completed"  # Uploaded, state updated
    UNCHANGED = "unchanged"  # Digest matched last sync, no remote call
    SUPERSEDED = "superseded"  # Newer remote change wins, state refreshed
    FAILED = "failed"  # Will be retried after cooldown
    FATAL = "fatal"  # Attempts exhausted or rejected, alert raised

    @property
    def removes_operation(self) -> bool:
        """Whether this outcome ends the operation's life in the queue."""
        return self in (
            OperationOutcome.COMPLETED,
            OperationOutcome.UNCHANGED,
            OperationOutcome.SUPERSEDED,
        )


@dataclass(frozen=True)
class OperationRecord:
    """Audit trail entry for an operation.

    Attributes:
        target: Target name.
        sequence: Operation sequence number.
        digest: Operation content digest.
        event: What happened ("superseded", "failed", "completed", ...).
        error: Error message, if any.
        recorded_at: When it happened.
    """

    target: str
    sequence: int
    digest: str
    event: str
    error: str | None
    recorded_at: float


@dataclass
class TargetStatus:
    """Operator-facing status of a target.

    Attributes:
        target: Target name.
        last_synced_at: Time of the last successful sync (None = never).
        last_digest: Digest of the last synced content.
        pending_count: Operations waiting in the queue.
        last_error: Last failure message of the pending operation.
        failure_class: Class of that failure.
        alert: True when the target reached a fatal state.
        in_flight: True while a worker is uploading.
        attempts: Failed attempts of the pending operation.
    """

    target: str
    last_synced_at: float | None = None
    last_digest: str | None = None
    pending_count: int = 0
    last_error: str | None = None
    failure_class: FailureClass | None = None
    alert: bool = False
    in_flight: bool = False
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        if self.failure_class is not None:
            data["failure_class"] = self.failure_class.value
        return data


class SchedulerState(IntEnum):
    """State of the scheduler."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    changes_reported: int = 0
    dispatched: int = 0
    uploads_completed: int = 0
    unchanged_skipped: int = 0
    superseded: int = 0
    stale_skipped: int = 0
    failures: int = 0
    fatal: int = 0


__all__ = [
    "ContentKind",
    "FailureClass",
    "OperationOutcome",
    "OperationRecord",
    "SchedulerState",
    "SchedulerStats",
    "SyncError",
    "SyncOperation",
    "SyncState",
    "SyncTarget",
    "TargetStatus",
    "UnknownTargetError",
    "UploadError",
]
