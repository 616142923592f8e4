"""Synchronization engine for process-generated artifacts.

Architecture:
    producer → SyncScheduler → OfflineQueue → WorkerPool → UploadWorker

Components:
- **SyncScheduler**: Accepts change reports, debounces, dispatches eligible work
- **OfflineQueue**: Durable latest-operation-per-target store with audit trail
- **UploadWorker**: Conflict resolution, upload and state update for one operation
- **WorkerPool**: Bounded concurrent worker threads
- **ConflictResolver**: Last-timestamp-wins between local and remote changes
- **ChunkedUploadSession**: Whole or ranged upload under the retry policy
- **RetryPolicy**: Failure classification and jittered exponential backoff
- **ArtifactWatcher**: Reports target source files changed on disk

All public symbols are re-exported here.
"""

from artifactsync.client.sync.conflict import (
    ConflictDecision,
    ConflictResolution,
    ConflictResolver,
)
from artifactsync.client.sync.queue import OfflineQueue
from artifactsync.client.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_BACKOFF,
    NETWORK_EXCEPTIONS,
    RetryExhaustedError,
    RetryPolicy,
)
from artifactsync.client.sync.scheduler import SyncScheduler
from artifactsync.client.sync.types import (
    ContentKind,
    FailureClass,
    OperationOutcome,
    OperationRecord,
    SchedulerState,
    SchedulerStats,
    SyncError,
    SyncOperation,
    SyncState,
    SyncTarget,
    TargetStatus,
    UnknownTargetError,
    UploadError,
)
from artifactsync.client.sync.upload import ChunkedUploadSession
from artifactsync.client.sync.watcher import ArtifactWatcher
from artifactsync.client.sync.workers import UploadWorker, WorkerPool, WorkerResult

__all__ = [
    # Scheduler
    "SyncScheduler",
    # Queue
    "OfflineQueue",
    # Conflict
    "ConflictDecision",
    "ConflictResolution",
    "ConflictResolver",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_BACKOFF",
    "NETWORK_EXCEPTIONS",
    "RetryExhaustedError",
    "RetryPolicy",
    # Upload
    "ChunkedUploadSession",
    # Workers
    "UploadWorker",
    "WorkerPool",
    "WorkerResult",
    # Watcher
    "ArtifactWatcher",
    # Types
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
