"""Offline queue of pending sync operations.

This module provides:
- OfflineQueue: Thread-safe, durable store of the latest operation per target

The queue keeps at most one operation per target: a newer report
replaces the pending one (replace-by-latest-sequence). Replaced, failed
and finished operations leave an entry in an audit trail.

Lifecycle of an operation:

    enqueue -> mark_in_flight -> mark_done(COMPLETED | UNCHANGED | SUPERSEDED) -> deleted
                              -> mark_done(FAILED) -> cooldown -> eligible again
                              -> mark_done(FATAL)  -> alert until new change or reset()

Persistence (SQLite):
    Each mutation is written through and committed immediately. In-flight
    markers do not survive a restart: an operation that was in flight
    when the process died is eligible again on the next open, so work is
    never stuck and never lost. Sequence numbers are persisted too, so
    they keep increasing across restarts.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

from artifactsync.client.sync.types import (
    ContentKind,
    FailureClass,
    OperationOutcome,
    OperationRecord,
    SyncOperation,
    SyncTarget,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 500


class OfflineQueue:
    """Durable queue holding the latest pending operation per target.

    Attributes:
        persistence_path: Optional SQLite path (None = memory only)
        history_size: Number of audit records kept
    """

    def __init__(
        self,
        persistence_path: Path | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        """Initialize the queue.

        Args:
            persistence_path: Optional path to SQLite DB for persistence
            history_size: Maximum audit records kept
        """
        self._lock = threading.RLock()
        self._operations: dict[str, SyncOperation] = {}  # target -> latest operation
        self._in_flight: dict[str, SyncOperation] = {}  # target -> dispatched operation
        self._history: deque[OperationRecord] = deque(maxlen=history_size)
        self._history_size = history_size
        self._last_sequence = 0
        self._persistence_path = persistence_path
        self._db: sqlite3.Connection | None = None
        self._closed = False

        if persistence_path:
            self._init_persistence()
            self._load_from_persistence()

    # === Persistence ===

    def _init_persistence(self) -> None:
        """Initialize SQLite database for persistence."""
        if not self._persistence_path:
            return

        self._persistence_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(
            str(self._persistence_path),
            check_same_thread=False,
        )
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS pending_operations (
                target TEXT PRIMARY KEY,
                remote_path TEXT NOT NULL,
                kind TEXT NOT NULL,
                source_path TEXT,
                sequence INTEGER NOT NULL,
                content BLOB NOT NULL,
                digest TEXT NOT NULL,
                created_at REAL NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                failure_class TEXT,
                eligible_at REAL NOT NULL,
                pending_since REAL NOT NULL,
                in_flight INTEGER NOT NULL DEFAULT 0,
                fatal INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS operation_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                target TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                digest TEXT NOT NULL,
                event TEXT NOT NULL,
                error TEXT,
                recorded_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS queue_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        self._db.commit()
        logger.debug("Initialized offline queue persistence at %s", self._persistence_path)

    def _load_from_persistence(self) -> None:
        """Load operations, history and the sequence counter on startup."""
        if not self._db:
            return

        cursor = self._db.execute(
            """
            SELECT target, remote_path, kind, source_path, sequence, content, digest,
                   created_at, attempts, last_error, failure_class, eligible_at,
                   pending_since, in_flight, fatal
            FROM pending_operations
            """
        )
        recovered = 0
        for row in cursor:
            (
                name, remote_path, kind, source_path, sequence, content, digest,
                created_at, attempts, last_error, failure_class, eligible_at,
                pending_since, in_flight, fatal,
            ) = row
            operation = SyncOperation(
                target=SyncTarget(
                    name=name,
                    remote_path=remote_path,
                    kind=ContentKind(kind),
                    source_path=source_path,
                ),
                content=bytes(content),
                digest=digest,
                sequence=sequence,
                created_at=created_at,
                attempts=attempts,
                last_error=last_error,
                failure_class=FailureClass(failure_class) if failure_class else None,
                eligible_at=eligible_at,
                pending_since=pending_since,
                fatal=bool(fatal),
            )
            self._operations[name] = operation
            if in_flight:
                recovered += 1

        if recovered:
            # Dispatches interrupted by a crash; make them eligible again
            self._db.execute("UPDATE pending_operations SET in_flight = 0")
            self._db.commit()
            logger.warning("Recovered %d operations left in flight by a previous run", recovered)

        history_rows = self._db.execute(
            """
            SELECT target, sequence, digest, event, error, recorded_at
            FROM operation_history ORDER BY id DESC LIMIT ?
            """,
            (self._history_size,),
        ).fetchall()
        for row in reversed(history_rows):
            self._history.append(OperationRecord(*row))

        meta = self._db.execute(
            "SELECT value FROM queue_meta WHERE key = 'last_sequence'"
        ).fetchone()
        stored_sequence = int(meta[0]) if meta else 0
        highest_pending = max((op.sequence for op in self._operations.values()), default=0)
        self._last_sequence = max(stored_sequence, highest_pending)

        if self._operations:
            logger.info("Loaded %d pending operations from persistence", len(self._operations))

    def _persist_operation(self, operation: SyncOperation) -> None:
        """Save an operation to SQLite."""
        if not self._db:
            return

        target = operation.target
        self._db.execute(
            """
            INSERT OR REPLACE INTO pending_operations
            (target, remote_path, kind, source_path, sequence, content, digest,
             created_at, attempts, last_error, failure_class, eligible_at,
             pending_since, in_flight, fatal)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                target.name,
                target.remote_path,
                target.kind.value,
                target.source_path,
                operation.sequence,
                operation.content,
                operation.digest,
                operation.created_at,
                operation.attempts,
                operation.last_error,
                operation.failure_class.value if operation.failure_class else None,
                operation.eligible_at,
                operation.pending_since,
                int(self._in_flight.get(target.name) is operation),
                int(operation.fatal),
            ),
        )
        self._db.commit()

    def _remove_from_persistence(self, target: str) -> None:
        """Remove an operation from SQLite."""
        if not self._db:
            return

        self._db.execute("DELETE FROM pending_operations WHERE target = ?", (target,))
        self._db.commit()

    def _set_in_flight_flag(self, target: str, in_flight: bool) -> None:
        if not self._db:
            return

        self._db.execute(
            "UPDATE pending_operations SET in_flight = ? WHERE target = ?",
            (int(in_flight), target),
        )
        self._db.commit()

    def _record_history(
        self,
        operation: SyncOperation,
        event: str,
        error: str | None = None,
    ) -> None:
        record = OperationRecord(
            target=operation.target.name,
            sequence=operation.sequence,
            digest=operation.digest,
            event=event,
            error=error,
            recorded_at=time.time(),
        )
        self._history.append(record)
        if not self._db:
            return

        self._db.execute(
            """
            INSERT INTO operation_history (target, sequence, digest, event, error, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (record.target, record.sequence, record.digest, record.event, record.error, record.recorded_at),
        )
        self._db.execute(
            """
            DELETE FROM operation_history
            WHERE id <= (SELECT MAX(id) FROM operation_history) - ?
            """,
            (self._history_size,),
        )
        self._db.commit()

    # === Queue operations ===

    def next_sequence(self) -> int:
        """Allocate the next sequence number.

        Returns:
            A number greater than any previously allocated one.
        """
        with self._lock:
            self._last_sequence += 1
            if self._db:
                self._db.execute(
                    "INSERT OR REPLACE INTO queue_meta (key, value) VALUES ('last_sequence', ?)",
                    (str(self._last_sequence),),
                )
                self._db.commit()
            return self._last_sequence

    def enqueue(self, operation: SyncOperation) -> bool:
        """Add or replace the pending operation of a target.

        The operation replaces the pending one only if its sequence number
        is higher. An in-flight operation for the same target keeps
        running; its result is reconciled in mark_done().

        Args:
            operation: The operation to add

        Returns:
            True if stored, False if an equal or newer operation is pending

        Raises:
            RuntimeError: If queue is closed
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Queue is closed")

            name = operation.target.name
            existing = self._operations.get(name)
            if existing:
                if operation.sequence <= existing.sequence:
                    logger.debug(
                        "Ignoring %r: sequence not newer than pending %r",
                        operation,
                        existing,
                    )
                    return False

                if name not in self._in_flight or self._in_flight[name] is not existing:
                    self._record_history(existing, "superseded")
                logger.debug("Replacing %r with %r", existing, operation)

            self._operations[name] = operation
            self._persist_operation(operation)

            logger.debug("Queued %r (queue size: %d)", operation, len(self._operations))
            return True

    def mark_in_flight(self, target: str, sequence: int) -> SyncOperation | None:
        """Claim a target's pending operation for dispatch.

        Args:
            target: Target name
            sequence: Sequence number the caller intends to dispatch

        Returns:
            The claimed operation, or None if the target is already in
            flight, alerted, or the sequence is no longer the latest.
        """
        with self._lock:
            operation = self._operations.get(target)
            if operation is None or operation.sequence != sequence:
                return None
            if target in self._in_flight or operation.fatal:
                return None

            self._in_flight[target] = operation
            operation.in_flight = True
            self._set_in_flight_flag(target, True)
            return operation

    def mark_done(
        self,
        target: str,
        sequence: int,
        outcome: OperationOutcome,
        error: str | None = None,
        failure_class: FailureClass | None = None,
        retry_at: float | None = None,
    ) -> bool:
        """Record the outcome of a dispatched operation.

        COMPLETED, UNCHANGED and SUPERSEDED delete the entry. FAILED bumps
        the attempt count, records the error and sets the cooldown. FATAL
        does the same and raises the alert.

        If a newer operation was enqueued while this one was in flight,
        only the in-flight marker is cleared; the newer operation stays.

        Args:
            target: Target name
            sequence: Sequence number of the dispatched operation
            outcome: What happened
            error: Error message for FAILED / FATAL
            failure_class: Failure class for FAILED / FATAL
            retry_at: Earliest time of the next attempt (FAILED only)

        Returns:
            True if the outcome applied to the latest operation, False if stale
        """
        with self._lock:
            dispatched = self._in_flight.get(target)
            if dispatched is not None and dispatched.sequence == sequence:
                del self._in_flight[target]
                dispatched.in_flight = False

            operation = self._operations.get(target)
            if operation is None or operation.sequence != sequence:
                if dispatched is not None:
                    self._record_history(dispatched, f"stale-{outcome.value}", error)
                    self._set_in_flight_flag(target, False)
                logger.debug(
                    "Outcome %s for %s seq=%d is stale", outcome.value, target, sequence
                )
                return False

            operation.in_flight = False
            if outcome.removes_operation:
                del self._operations[target]
                self._remove_from_persistence(target)
                self._record_history(operation, outcome.value)
                return True

            operation.attempts += 1
            operation.last_error = error
            operation.failure_class = failure_class
            operation.fatal = outcome == OperationOutcome.FATAL
            operation.eligible_at = retry_at if retry_at is not None else time.time()
            self._persist_operation(operation)
            self._record_history(operation, outcome.value, error)
            return True

    def list_eligible(self, now: float | None = None) -> list[SyncOperation]:
        """List operations ready for dispatch.

        Args:
            now: Current time (defaults to time.time())

        Returns:
            Operations not in flight, not alerted and past their cooldown,
            oldest sequence first
        """
        current = time.time() if now is None else now
        with self._lock:
            eligible = [
                op
                for name, op in self._operations.items()
                if name not in self._in_flight and not op.fatal and op.eligible_at <= current
            ]
        return sorted(eligible, key=lambda op: op.sequence)

    def reset(self, target: str, now: float | None = None) -> bool:
        """Clear the alert and attempt count of a target's operation.

        Args:
            target: Target name
            now: Time from which the operation is eligible again

        Returns:
            True if there was an operation to reset
        """
        with self._lock:
            operation = self._operations.get(target)
            if operation is None:
                return False
            operation.fatal = False
            operation.attempts = 0
            operation.last_error = None
            operation.failure_class = None
            operation.eligible_at = time.time() if now is None else now
            self._persist_operation(operation)
            self._record_history(operation, "reset")
            logger.info("Reset pending operation for %s", target)
            return True

    def get(self, target: str) -> SyncOperation | None:
        """Get the pending operation of a target without removing it."""
        with self._lock:
            return self._operations.get(target)

    def is_in_flight(self, target: str) -> bool:
        """Check if a target has a dispatched operation."""
        with self._lock:
            return target in self._in_flight

    def in_flight_count(self) -> int:
        """Number of targets with a dispatched operation."""
        with self._lock:
            return len(self._in_flight)

    def history(self, target: str | None = None, limit: int = 50) -> list[OperationRecord]:
        """Get recent audit records, newest last.

        Args:
            target: Only records of this target (None = all)
            limit: Maximum number of records
        """
        with self._lock:
            records = [r for r in self._history if target is None or r.target == target]
        return records[-limit:]

    def close(self) -> None:
        """Close the queue and its database."""
        with self._lock:
            self._closed = True
            if self._db:
                self._db.close()
                self._db = None
            logger.debug("Offline queue closed")

    def __len__(self) -> int:
        """Get number of pending operations."""
        with self._lock:
            return len(self._operations)

    def __iter__(self) -> Iterator[SyncOperation]:
        """Iterate over pending operations by sequence (does not remove them)."""
        with self._lock:
            operations = sorted(self._operations.values(), key=lambda op: op.sequence)
        return iter(operations)

    def __bool__(self) -> bool:
        """Check if queue has operations."""
        with self._lock:
            return bool(self._operations)

    @property
    def is_closed(self) -> bool:
        """Check if queue is closed."""
        return self._closed

    def stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with operation counts by state
        """
        with self._lock:
            return {
                "total": len(self._operations),
                "in_flight": len(self._in_flight),
                "fatal": sum(1 for op in self._operations.values() if op.fatal),
                "retrying": sum(
                    1 for op in self._operations.values() if op.attempts and not op.fatal
                ),
            }
