"""Worker pool for concurrent uploads.

This module provides:
- WorkerPool: Bounded pool of worker threads
- WorkerTask: Represents a queued task for the pool
- PoolState: Pool lifecycle states
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from artifactsync.client.sync.types import FailureClass
from artifactsync.client.sync.workers.base import BaseWorker, WorkerResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from artifactsync.client.sync.types import SyncOperation

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class PoolState(Enum):
    """State of the worker pool."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


@dataclass
class WorkerTask:
    """A task to be executed by the worker pool.

    Attributes:
        operation: The sync operation to process.
        on_complete: Called with the operation and its result, success or not.
    """

    operation: SyncOperation
    on_complete: Callable[[SyncOperation, WorkerResult], None] | None = None


class WorkerPool:
    """Pool of workers for concurrent uploads.

    Manages worker threads that process tasks from a queue. A fresh
    worker is created per task by the factory. The caller guarantees at
    most one task per target at a time; the pool only bounds overall
    concurrency.

    Usage:
        pool = WorkerPool(lambda: UploadWorker(...), max_workers=4)
        pool.start()
        pool.submit(operation, on_complete=callback)
        pool.stop()
    """

    def __init__(
        self,
        worker_factory: Callable[[], BaseWorker],
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        """Initialize the worker pool.

        Args:
            worker_factory: Creates the worker for a task.
            max_workers: Maximum concurrent workers.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._worker_factory = worker_factory
        self._max_workers = max_workers

        # Pool state
        self._pool_state = PoolState.STOPPED
        self._lock = threading.Lock()

        # Task queue
        self._task_queue: queue.Queue[WorkerTask | None] = queue.Queue()

        # Worker threads
        self._workers: list[threading.Thread] = []

        # Statistics
        self._completed_count = 0
        self._error_count = 0

    @property
    def state(self) -> PoolState:
        """Get current pool state."""
        return self._pool_state

    @property
    def completed_count(self) -> int:
        """Get number of completed tasks."""
        return self._completed_count

    @property
    def error_count(self) -> int:
        """Get number of failed tasks."""
        return self._error_count

    def start(self) -> None:
        """Start the worker pool."""
        with self._lock:
            if self._pool_state != PoolState.STOPPED:
                logger.warning("Worker pool already running")
                return

            self._pool_state = PoolState.RUNNING

            for i in range(self._max_workers):
                thread = threading.Thread(
                    target=self._worker_loop,
                    name=f"WorkerPool-{i}",
                    daemon=True,
                )
                thread.start()
                self._workers.append(thread)

            logger.info(f"Worker pool started with {self._max_workers} workers")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the worker pool.

        Tasks already queued are still processed; workers exit once the
        queue drains.

        Args:
            timeout: Maximum time to wait for workers to finish.
        """
        with self._lock:
            if self._pool_state == PoolState.STOPPED:
                return

            self._pool_state = PoolState.STOPPING
            logger.info("Worker pool stopping...")

            # Poison pills go behind the queued tasks
            for _ in self._workers:
                self._task_queue.put(None)

        for worker in self._workers:
            worker.join(timeout=timeout / len(self._workers))

        with self._lock:
            alive = [worker for worker in self._workers if worker.is_alive()]
            if alive:
                logger.warning("%d worker threads still busy after stop timeout", len(alive))
            self._pool_state = PoolState.STOPPED
            self._workers.clear()
            logger.info("Worker pool stopped")

    def submit(
        self,
        operation: SyncOperation,
        on_complete: Callable[[SyncOperation, WorkerResult], None] | None = None,
    ) -> bool:
        """Submit a task to the pool.

        Args:
            operation: The sync operation to process.
            on_complete: Callback with the result.

        Returns:
            True if task was submitted, False if pool is not running.
        """
        if self._pool_state != PoolState.RUNNING:
            logger.warning("Cannot submit task: pool not running")
            return False

        task = WorkerTask(operation=operation, on_complete=on_complete)

        self._task_queue.put(task)
        logger.debug("Task submitted: %r", operation)
        return True

    def _worker_loop(self) -> None:
        """Main loop for worker threads."""
        while True:
            try:
                task = self._task_queue.get(timeout=1.0)
            except queue.Empty:
                if self._pool_state == PoolState.RUNNING:
                    continue
                break

            if task is None:
                # Poison pill - stop worker
                break

            self._process_task(task)

    def _process_task(self, task: WorkerTask) -> None:
        """Process a single task.

        Args:
            task: The task to process.
        """
        try:
            worker = self._worker_factory()
            result = worker.execute(task.operation)
        except Exception as e:
            logger.exception("Task error: %r", task.operation)
            result = WorkerResult(
                success=False,
                error=str(e),
                failure_class=FailureClass.FATAL,
            )

        with self._lock:
            if result.success:
                self._completed_count += 1
            else:
                self._error_count += 1

        if task.on_complete:
            try:
                task.on_complete(task.operation, result)
            except Exception:
                logger.exception("Completion callback failed for %r", task.operation)
