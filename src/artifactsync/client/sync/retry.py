"""Retry logic with failure classification and jittered exponential backoff.

This module provides:
- RetryPolicy: Classifies failures, computes delays and retries remote calls
- RetryExhaustedError: Raised when a call used up its attempt budget

Failure classes and what the policy does with them:

    | Class             | Action                                         |
    |-------------------|------------------------------------------------|
    | transient-network | Retry with backoff                             |
    | rate-limited      | Retry after max(backoff, suggested interval)   |
    | server-error      | Retry with backoff                             |
    | auth-expired      | Refresh credentials, retry immediately         |
    | conflict          | Raise, the conflict resolver handles it        |
    | fatal             | Raise, surfaced to the operator                |
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from artifactsync.client.api import RemoteStoreError
from artifactsync.client.sync.types import FailureClass, SyncError

if TYPE_CHECKING:
    from artifactsync.core.config import EngineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 60.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Network-related exceptions that indicate connectivity issues
NETWORK_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    OSError,
)

RETRYABLE_CLASSES = frozenset({
    FailureClass.TRANSIENT_NETWORK,
    FailureClass.RATE_LIMITED,
    FailureClass.SERVER_ERROR,
    FailureClass.AUTH_EXPIRED,
})


class RetryExhaustedError(SyncError):
    """A remote call failed on every allowed attempt.

    Attributes:
        description: What was being attempted.
        failure_class: Class of the last failure.
        attempts: Number of attempts made.
    """

    def __init__(
        self,
        description: str,
        failure_class: FailureClass,
        attempts: int,
        last_error: BaseException,
    ) -> None:
        self.description = description
        self.failure_class = failure_class
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{description} failed after {attempts} attempts "
            f"({failure_class.value}): {last_error}"
        )


class RetryPolicy:
    """Backoff policy shared by every remote call.

    Delays grow as ``initial_backoff * multiplier ** (attempt - 1)``, capped
    at max_backoff, with full jitter (uniform in [0, delay]).
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_auth_expired: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the policy.

        Args:
            max_attempts: Attempts per call before giving up.
            initial_backoff: Base delay in seconds.
            max_backoff: Maximum delay in seconds.
            backoff_multiplier: Multiplier for each retry.
            rng: Random source for jitter.
            sleep: Function used to wait between attempts.
            on_auth_expired: Called before retrying an auth-expired failure.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._on_auth_expired = on_auth_expired

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs: object) -> RetryPolicy:
        """Build a policy from engine configuration."""
        return cls(
            max_attempts=config.max_attempts,
            initial_backoff=config.initial_backoff,
            max_backoff=config.max_backoff,
            backoff_multiplier=config.backoff_multiplier,
            **kwargs,  # type: ignore[arg-type]
        )

    def set_on_auth_expired(self, callback: Callable[[], None] | None) -> None:
        """Set the credential refresh hook."""
        self._on_auth_expired = callback

    # === Classification ===

    @staticmethod
    def classify(error: BaseException) -> FailureClass:
        """Map an exception onto a failure class.

        Unknown exceptions are fatal: retrying a programming error only
        hides it.
        """
        if isinstance(error, RemoteStoreError):
            return error.failure_class
        if isinstance(error, RetryExhaustedError):
            return error.failure_class
        if isinstance(error, NETWORK_EXCEPTIONS):
            return FailureClass.TRANSIENT_NETWORK
        return FailureClass.FATAL

    @staticmethod
    def is_retryable(failure_class: FailureClass) -> bool:
        """Check if a failure class may be retried blindly."""
        return failure_class in RETRYABLE_CLASSES

    # === Delays ===

    def backoff_ceiling(self, attempt: int) -> float:
        """Upper bound of the delay after the given (1-based) failed attempt."""
        exponent = max(attempt - 1, 0)
        return min(self.initial_backoff * self.backoff_multiplier**exponent, self.max_backoff)

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Compute the jittered delay after the given failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-based).
            retry_after: Interval suggested by a rate-limit response.

        Returns:
            Seconds to wait. A suggested interval wins when larger.
        """
        jittered = self._rng.uniform(0.0, self.backoff_ceiling(attempt))
        if retry_after is not None:
            return max(jittered, retry_after)
        return jittered

    # === Execution ===

    def call(self, func: Callable[[], T], description: str = "remote call") -> T:
        """Execute a remote call, retrying retryable failures.

        Args:
            func: Function to execute.
            description: Human-readable name for logs and errors.

        Returns:
            Result of the function.

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable class.
            Exception: The original error for conflict and fatal classes.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func()
            except Exception as e:
                failure_class = self.classify(e)
                if not self.is_retryable(failure_class):
                    raise

                if attempt == self.max_attempts:
                    logger.error(
                        "%s: all %d attempts failed (%s): %s",
                        description,
                        self.max_attempts,
                        failure_class.value,
                        e,
                    )
                    raise RetryExhaustedError(description, failure_class, attempt, e) from e

                if failure_class == FailureClass.AUTH_EXPIRED:
                    logger.info("%s: credentials expired, refreshing", description)
                    if self._on_auth_expired:
                        self._on_auth_expired()
                    continue

                wait = self.delay(attempt, getattr(e, "retry_after", None))
                logger.warning(
                    f"{description}: attempt {attempt}/{self.max_attempts} failed "
                    f"({failure_class.value}): {e}. Retrying in {wait:.1f}s..."
                )
                self._sleep(wait)

        # Should not reach here, but satisfy type checker
        raise RuntimeError("Unexpected retry loop exit")
