"""Base worker class.

This module provides:
- WorkerState: Enum for worker lifecycle states
- WorkerContext: What a worker gets to process
- WorkerResult: Result of a worker execution
- BaseWorker: Abstract base class turning work and failures into results
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from artifactsync.client.api import RemoteStoreError
from artifactsync.client.sync.retry import RetryExhaustedError, RetryPolicy
from artifactsync.client.sync.types import FailureClass
from artifactsync.client.sync.upload import SessionAbortedError

if TYPE_CHECKING:
    from artifactsync.client.sync.types import SyncOperation

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """State of a worker."""

    IDLE = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass
class WorkerResult:
    """Result of a worker execution.

    Attributes:
        success: Whether the operation succeeded.
        result: The result value if successful (type depends on worker).
        error: Error message if failed.
        failure_class: Class of the failure if failed.
        retry_after: Interval suggested by the remote, if any.
        elapsed_time: Time taken in seconds.
    """

    success: bool
    result: Any = None
    error: str | None = None
    failure_class: FailureClass | None = None
    retry_after: float | None = None
    elapsed_time: float = 0.0


@dataclass
class WorkerContext:
    """Context passed to worker execution.

    Attributes:
        operation: The sync operation being processed.
    """

    operation: SyncOperation


def _retry_after(error: BaseException) -> float | None:
    if isinstance(error, RetryExhaustedError):
        error = error.last_error
    return getattr(error, "retry_after", None)


class BaseWorker(ABC):
    """Abstract base class for workers.

    execute() never raises: remote failures come back as a failed
    WorkerResult carrying the failure class, so the caller can turn them
    into operation state. A call that used up its retries is fatal; an
    upload session abandoned after a range used up its retries keeps the
    class of the range failure, so the operation can start over later.

    Subclasses must implement:
    - _do_work(): The actual work logic
    - worker_type: Property returning the worker type name
    """

    def __init__(self) -> None:
        """Initialize the worker."""
        self._worker_state = WorkerState.IDLE

    @property
    @abstractmethod
    def worker_type(self) -> str:
        """Return the worker type name (e.g., 'upload')."""
        ...

    @property
    def state(self) -> WorkerState:
        """Get current worker state."""
        return self._worker_state

    def execute(self, operation: SyncOperation) -> WorkerResult:
        """Execute the worker operation.

        Args:
            operation: The sync operation to process.

        Returns:
            WorkerResult describing the outcome.
        """
        self._worker_state = WorkerState.RUNNING

        start_time = time.time()
        ctx = WorkerContext(operation=operation)

        try:
            result_value = self._do_work(ctx)
            self._worker_state = WorkerState.COMPLETED
            return WorkerResult(
                success=True,
                result=result_value,
                elapsed_time=time.time() - start_time,
            )

        except Exception as e:
            elapsed = time.time() - start_time
            self._worker_state = WorkerState.FAILED
            failure_class = RetryPolicy.classify(e)
            if isinstance(e, RetryExhaustedError) and not isinstance(e, SessionAbortedError):
                # A call used up its attempt budget
                failure_class = FailureClass.FATAL
            if not isinstance(e, (RemoteStoreError, RetryExhaustedError)):
                logger.exception(f"{self.worker_type} worker failed on {operation!r}")
            else:
                logger.warning(
                    f"{self.worker_type} worker failed on {operation!r} "
                    f"({failure_class.value}): {e}"
                )
            return WorkerResult(
                success=False,
                error=str(e),
                failure_class=failure_class,
                retry_after=_retry_after(e),
                elapsed_time=elapsed,
            )

    @abstractmethod
    def _do_work(self, ctx: WorkerContext) -> Any:
        """Perform the actual work.

        Args:
            ctx: Worker context with the operation.

        Returns:
            The result of the operation.

        Raises:
            Exception: Any error during execution.
        """
        ...

