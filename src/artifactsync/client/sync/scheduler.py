"""Sync scheduler for orchestrating artifact uploads.

This module provides:
- SyncScheduler: Accepts change reports, debounces them and dispatches uploads

The scheduler is the "brain" of the sync engine:
1. Records each reported change as the latest operation of its target
2. Holds operations back for the target's debounce window
3. Dispatches eligible operations to the worker pool, one per target
4. Turns worker results into queue state (done, cooldown or alert)

Dispatch rules:
    | Situation                         | Action                              |
    |-----------------------------------|-------------------------------------|
    | Change reported, nothing pending  | Queue, eligible after debounce      |
    | Change reported, older pending    | Replace, keep first pending time    |
    | Change reported, upload in flight | Queue; in-flight upload finishes    |
    | In-flight result is stale         | Dispatch the newer operation now    |
    | Conflict or abandoned session     | Cooldown from the retry policy      |
    | Call retries exhausted            | Keep operation, raise alert         |
    | Fatal error or max_attempts hit   | Keep operation, raise alert         |
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from artifactsync.client.sync.conflict import ConflictResolver
from artifactsync.client.sync.retry import RetryPolicy
from artifactsync.client.sync.types import (
    FailureClass,
    OperationOutcome,
    SchedulerState,
    SchedulerStats,
    SyncOperation,
    SyncTarget,
    TargetStatus,
    UnknownTargetError,
)
from artifactsync.client.sync.upload import ChunkedUploadSession
from artifactsync.client.sync.workers import UploadWorker, WorkerPool, WorkerResult
from artifactsync.core.config import EngineConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from artifactsync.client.api import RemoteStore
    from artifactsync.client.state import SyncStateStore
    from artifactsync.client.sync.queue import OfflineQueue

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Central orchestrator for sync operations.

    A ticker thread calls tick() every tick_interval seconds; tests can
    skip the thread and drive tick() with their own clock.

    Usage:
        queue = OfflineQueue(Path("queue.db"))
        states = SyncStateStore(Path("state.db"))
        scheduler = SyncScheduler(store, queue, states, targets=[target])

        scheduler.start()
        scheduler.report_change("dashboard-status", b'{"ok": true}')
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        store: RemoteStore,
        queue: OfflineQueue,
        state_store: SyncStateStore,
        config: EngineConfig | None = None,
        targets: Iterable[SyncTarget] = (),
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Remote store client
            queue: Offline queue holding pending operations
            state_store: Sync state store
            config: Engine settings (defaults if None)
            targets: Targets known up front
            retry_policy: Retry policy (built from config if None)
            clock: Time source for debounce, cooldowns and timestamps
        """
        self._store = store
        self._queue = queue
        self._states = state_store
        self._config = config or EngineConfig()
        self._clock = clock

        self._retry = retry_policy or RetryPolicy.from_config(self._config)
        self._retry.set_on_auth_expired(store.invalidate_credentials)
        self._resolver = ConflictResolver(store, state_store, self._retry)
        self._uploader = ChunkedUploadSession(
            store,
            self._retry,
            threshold=self._config.upload_threshold,
            chunk_size=self._config.chunk_size,
        )
        self._pool = WorkerPool(self._create_worker, max_workers=self._config.max_workers)

        # Targets and their debounce windows
        self._targets: dict[str, SyncTarget] = {}
        self._windows: dict[str, float] = {}
        for target in targets:
            self.register_target(target)

        # State
        self._state = SchedulerState.STOPPED
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._stop_event = threading.Event()

        # Ticker thread
        self._thread: threading.Thread | None = None

        # Stats
        self._stats = SchedulerStats()

        # Callbacks
        self._on_alert: Callable[[SyncOperation], None] | None = None

    @property
    def state(self) -> SchedulerState:
        """Get current scheduler state."""
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        """Get scheduler statistics."""
        return self._stats

    @property
    def targets(self) -> list[SyncTarget]:
        """Get registered targets."""
        with self._lock:
            return list(self._targets.values())

    def set_on_alert(self, callback: Callable[[SyncOperation], None]) -> None:
        """Set callback for targets entering the fatal alert state."""
        self._on_alert = callback

    def register_target(self, target: SyncTarget) -> None:
        """Register a target so it can be reported by name."""
        self._targets[target.name] = target
        logger.debug("Registered target %s -> %s", target.name, target.remote_path)

    def _resolve_target(self, target: SyncTarget | str) -> SyncTarget:
        if isinstance(target, SyncTarget):
            if target.name not in self._targets:
                self.register_target(target)
            return target
        try:
            return self._targets[target]
        except KeyError:
            raise UnknownTargetError(target) from None

    def _create_worker(self) -> UploadWorker:
        return UploadWorker(
            store=self._store,
            state_store=self._states,
            resolver=self._resolver,
            uploader=self._uploader,
            retry_policy=self._retry,
            max_conflict_rounds=self._config.max_conflict_rounds,
        )

    # === Lifecycle ===

    def start(self, run_ticker: bool = True) -> None:
        """Start the worker pool and, optionally, the ticker thread.

        Args:
            run_ticker: Whether to tick periodically in a background thread
        """
        with self._lock:
            if self._state != SchedulerState.STOPPED:
                logger.warning("Scheduler already running")
                return

            self._pool.start()
            self._state = SchedulerState.RUNNING
            self._stop_event.clear()

            if run_ticker:
                self._thread = threading.Thread(
                    target=self._run,
                    name="SyncScheduler",
                    daemon=True,
                )
                self._thread.start()
            logger.info("Scheduler started with %d targets", len(self._targets))

        # Pick up work left over from a previous run
        self.tick()

    def shutdown(self, timeout: float = 10.0) -> None:
        """Stop dispatching and wait for in-flight uploads.

        Queued operations stay in the offline queue for the next run.

        Args:
            timeout: Maximum time to wait for in-flight work
        """
        with self._lock:
            if self._state == SchedulerState.STOPPED:
                return

            self._state = SchedulerState.STOPPING
            self._stop_event.set()
            logger.info("Scheduler stopping...")

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

        self._pool.stop(timeout=timeout)

        with self._lock:
            self._state = SchedulerState.STOPPED
            self._thread = None
            self._idle.notify_all()
            logger.info(
                "Scheduler stopped (%d operations still queued)", len(self._queue)
            )

    def __enter__(self) -> SyncScheduler:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _run(self) -> None:
        """Ticker loop."""
        logger.debug("Scheduler ticker started")

        while not self._stop_event.wait(self._config.tick_interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Error during scheduler tick")

        logger.debug("Scheduler ticker ended")

    # === Change reporting ===

    def report_change(self, target: SyncTarget | str, content: bytes) -> SyncOperation:
        """Record new content for a target.

        The operation replaces any pending one for the target. If an upload
        for the target is in flight it is left to finish; its result is
        reconciled against this newer operation on completion.

        Args:
            target: Target or registered target name
            content: Full current content

        Returns:
            The queued operation

        Raises:
            UnknownTargetError: If a name was given that is not registered
        """
        resolved = self._resolve_target(target)
        name = resolved.name
        now = self._clock()

        with self._lock:
            operation = SyncOperation.create(
                resolved, content, self._queue.next_sequence(), created_at=now
            )

            cooldown = 0.0
            existing = self._queue.get(name)
            if existing is not None and not existing.in_flight and not existing.fatal:
                operation.pending_since = existing.pending_since
                cooldown = existing.eligible_at

            window = self._windows.get(name, self._config.debounce_window)
            deadline = min(now + window, operation.pending_since + self._config.debounce_max_wait)
            operation.eligible_at = max(deadline, cooldown)

            self._queue.enqueue(operation)
            self._stats.changes_reported += 1

        logger.debug(
            "Change reported: %r, eligible in %.2fs", operation, operation.eligible_at - now
        )
        return operation

    def debounce(self, target: SyncTarget | str, window: float) -> None:
        """Set the coalescing window of a target.

        Changes reported within the window collapse into one upload of the
        last content. A target that keeps changing is still uploaded at
        least every debounce_max_wait seconds.

        Args:
            target: Target or registered target name
            window: Window in seconds
        """
        if window < 0:
            raise ValueError("Debounce window must not be negative")
        name = self._resolve_target(target).name
        with self._lock:
            self._windows[name] = window

    # === Dispatch ===

    def tick(self, now: float | None = None) -> int:
        """Dispatch every eligible operation.

        Calling tick() twice with no new changes dispatches nothing the
        second time.

        Args:
            now: Current time (defaults to the scheduler clock)

        Returns:
            Number of operations dispatched
        """
        current = self._clock() if now is None else now
        with self._lock:
            if self._state != SchedulerState.RUNNING:
                logger.debug("Tick skipped: scheduler not running")
                return 0

            dispatched = 0
            for operation in self._queue.list_eligible(current):
                if self._dispatch(operation):
                    dispatched += 1

        if dispatched:
            logger.debug("Tick dispatched %d operations", dispatched)
        return dispatched

    def _dispatch(self, operation: SyncOperation) -> bool:
        """Claim an operation and hand it to the pool.

        Must be called with the lock held.
        """
        claimed = self._queue.mark_in_flight(operation.target.name, operation.sequence)
        if claimed is None:
            return False

        self._pool.submit(claimed, on_complete=self._on_worker_done)
        self._stats.dispatched += 1
        logger.info("Dispatching %r", claimed)
        return True

    def _on_worker_done(self, operation: SyncOperation, result: WorkerResult) -> None:
        """Turn a worker result into queue state (runs on a worker thread)."""
        name = operation.target.name
        now = self._clock()

        with self._lock:
            if result.success:
                outcome: OperationOutcome = result.result
                latest = self._queue.mark_done(name, operation.sequence, outcome)
                self._count_success(outcome)
            else:
                outcome, failure_class, retry_at = self._failure_outcome(operation, result, now)
                latest = self._queue.mark_done(
                    name,
                    operation.sequence,
                    outcome,
                    error=result.error,
                    failure_class=failure_class,
                    retry_at=retry_at,
                )
                if outcome == OperationOutcome.FATAL:
                    self._stats.fatal += 1
                else:
                    self._stats.failures += 1

                if latest and outcome == OperationOutcome.FATAL:
                    logger.error(
                        "Target %s needs attention: %s failed permanently: %s",
                        name,
                        operation,
                        result.error,
                    )
                    if self._on_alert:
                        self._on_alert(operation)
                elif latest:
                    logger.warning(
                        "%r failed (attempt %d/%d), next try in %.1fs",
                        operation,
                        operation.attempts,
                        self._config.max_attempts,
                        (retry_at or now) - now,
                    )

            if not latest:
                # A newer change arrived while this one was in flight
                self._stats.stale_skipped += 1
                newer = self._queue.get(name)
                if (
                    newer is not None
                    and self._state == SchedulerState.RUNNING
                    and newer.eligible_at <= now
                ):
                    logger.debug("Dispatching %r right after stale %r", newer, operation)
                    self._dispatch(newer)

            self._idle.notify_all()

    def _failure_outcome(
        self,
        operation: SyncOperation,
        result: WorkerResult,
        now: float,
    ) -> tuple[OperationOutcome, FailureClass, float | None]:
        """Decide between a cooldown and the alert state.

        Workers report a call that used up its retries as fatal. What comes
        back retryable (a conflict that outlasted its rounds or an abandoned
        upload session) cools down, until the operation itself reaches
        max_attempts failed dispatches.

        Returns:
            (outcome, failure class to record, retry time or None)
        """
        failure_class = result.failure_class or FailureClass.FATAL
        attempt = operation.attempts + 1
        if failure_class == FailureClass.FATAL or attempt >= self._config.max_attempts:
            return OperationOutcome.FATAL, FailureClass.FATAL, None
        retry_at = now + self._retry.delay(attempt, result.retry_after)
        return OperationOutcome.FAILED, failure_class, retry_at

    def _count_success(self, outcome: OperationOutcome) -> None:
        if outcome == OperationOutcome.COMPLETED:
            self._stats.uploads_completed += 1
        elif outcome == OperationOutcome.UNCHANGED:
            self._stats.unchanged_skipped += 1
        elif outcome == OperationOutcome.SUPERSEDED:
            self._stats.superseded += 1

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no upload is in flight.

        Args:
            timeout: Maximum time to wait (None = forever)

        Returns:
            True if idle, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(
                lambda: self._queue.in_flight_count() == 0, timeout=timeout
            )

    # === Operator surface ===

    def reset(self, target: SyncTarget | str) -> bool:
        """Clear a target's alert so its pending operation is retried.

        Returns:
            True if the target had a pending operation
        """
        name = self._resolve_target(target).name
        with self._lock:
            return self._queue.reset(name, now=self._clock())

    def status(self, target: SyncTarget | str) -> TargetStatus:
        """Get the operator-facing status of a target.

        Raises:
            UnknownTargetError: If the target is not registered
        """
        name = self._resolve_target(target).name
        with self._lock:
            state = self._states.get(name)
            operation = self._queue.get(name)
            status = TargetStatus(
                target=name,
                pending_count=1 if operation else 0,
                in_flight=self._queue.is_in_flight(name),
            )
        if state is not None:
            status.last_synced_at = state.synced_at
            status.last_digest = state.digest
        if operation is not None:
            status.last_error = operation.last_error
            status.failure_class = operation.failure_class
            status.alert = operation.fatal
            status.attempts = operation.attempts
        return status

    def statuses(self) -> list[TargetStatus]:
        """Get the status of every registered target."""
        return [self.status(name) for name in sorted(self._targets)]
