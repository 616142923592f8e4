"""Tests for the retry policy."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from artifactsync.client.api import (
    AuthExpiredError,
    ConflictError,
    FatalRemoteError,
    RateLimitedError,
    ServerError,
    TransientNetworkError,
)
from artifactsync.client.sync.retry import RetryExhaustedError, RetryPolicy
from artifactsync.core.config import EngineConfig
from artifactsync.core.types import FailureClass

from tests.conftest import SleepRecorder, UpperBoundRandom


def failing(errors: list[Exception], result: str = "ok") -> tuple[Callable[[], str], list[int]]:
    """Build a function that raises the given errors in order, then returns result."""
    calls: list[int] = []

    def func() -> str:
        calls.append(1)
        if errors:
            raise errors.pop(0)
        return result

    return func, calls


class TestClassify:
    """Tests for failure classification."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (TransientNetworkError("reset"), FailureClass.TRANSIENT_NETWORK),
            (RateLimitedError("slow down"), FailureClass.RATE_LIMITED),
            (ServerError("boom", 503), FailureClass.SERVER_ERROR),
            (AuthExpiredError("expired", 401), FailureClass.AUTH_EXPIRED),
            (ConflictError("mismatch", 412), FailureClass.CONFLICT),
            (FatalRemoteError("bad request", 400), FailureClass.FATAL),
            (ConnectionError("refused"), FailureClass.TRANSIENT_NETWORK),
            (TimeoutError(), FailureClass.TRANSIENT_NETWORK),
            (ValueError("bug"), FailureClass.FATAL),
        ],
    )
    def test_classify(self, error: Exception, expected: FailureClass) -> None:
        """Each exception maps to its failure class."""
        assert RetryPolicy.classify(error) == expected

    def test_exhausted_keeps_class(self) -> None:
        """An exhausted retry keeps the class of its last failure."""
        error = RetryExhaustedError("put", FailureClass.SERVER_ERROR, 5, ServerError("x"))
        assert RetryPolicy.classify(error) == FailureClass.SERVER_ERROR

    def test_is_retryable(self) -> None:
        """Only conflict and fatal are not retried blindly."""
        assert RetryPolicy.is_retryable(FailureClass.TRANSIENT_NETWORK)
        assert RetryPolicy.is_retryable(FailureClass.RATE_LIMITED)
        assert RetryPolicy.is_retryable(FailureClass.SERVER_ERROR)
        assert RetryPolicy.is_retryable(FailureClass.AUTH_EXPIRED)
        assert not RetryPolicy.is_retryable(FailureClass.CONFLICT)
        assert not RetryPolicy.is_retryable(FailureClass.FATAL)


class TestDelays:
    """Tests for backoff delays."""

    def test_backoff_ceiling_doubles_and_caps(self) -> None:
        """Ceilings double from the initial backoff up to the maximum."""
        policy = RetryPolicy()
        ceilings = [policy.backoff_ceiling(n) for n in range(1, 9)]
        assert ceilings == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]

    def test_delay_within_ceiling(self) -> None:
        """Jittered delays stay within [0, ceiling]."""
        policy = RetryPolicy()
        for attempt in range(1, 10):
            assert 0.0 <= policy.delay(attempt) <= policy.backoff_ceiling(attempt)

    def test_retry_after_wins_when_larger(self) -> None:
        """A suggested interval longer than the backoff is honored."""
        policy = RetryPolicy(rng=UpperBoundRandom())
        assert policy.delay(1, retry_after=10.0) == 10.0
        assert policy.delay(4, retry_after=2.0) == 8.0

    def test_from_config(self) -> None:
        """Policies built from config use its settings."""
        policy = RetryPolicy.from_config(EngineConfig(max_attempts=2, initial_backoff=0.5))
        assert policy.max_attempts == 2
        assert policy.backoff_ceiling(1) == 0.5

    def test_invalid_attempts(self) -> None:
        """At least one attempt is required."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCall:
    """Tests for RetryPolicy.call()."""

    @pytest.mark.parametrize("failures", [0, 1, 3])
    def test_succeeds_after_failures(
        self, retry_policy: RetryPolicy, sleeps: SleepRecorder, failures: int
    ) -> None:
        """m retryable failures then success means m+1 calls."""
        func, calls = failing([ServerError("boom") for _ in range(failures)])

        assert retry_policy.call(func) == "ok"

        assert len(calls) == failures + 1
        assert len(sleeps.delays) == failures
        assert sleeps.delays == sorted(sleeps.delays)

    def test_exhaustion(self, retry_policy: RetryPolicy, sleeps: SleepRecorder) -> None:
        """After max_attempts failures the call raises RetryExhaustedError."""
        func, calls = failing([TransientNetworkError("down") for _ in range(10)])

        with pytest.raises(RetryExhaustedError) as exc_info:
            retry_policy.call(func, description="put status")

        assert len(calls) == 5
        assert len(sleeps.delays) == 4
        assert exc_info.value.attempts == 5
        assert exc_info.value.failure_class == FailureClass.TRANSIENT_NETWORK
        assert isinstance(exc_info.value.last_error, TransientNetworkError)
        assert "put status" in str(exc_info.value)

    def test_conflict_not_retried(self, retry_policy: RetryPolicy, sleeps: SleepRecorder) -> None:
        """Conflicts propagate immediately."""
        func, calls = failing([ConflictError("mismatch", 412)])

        with pytest.raises(ConflictError):
            retry_policy.call(func)

        assert len(calls) == 1
        assert sleeps.delays == []

    def test_fatal_not_retried(self, retry_policy: RetryPolicy) -> None:
        """Unknown exceptions propagate immediately."""
        func, calls = failing([ValueError("bug")])

        with pytest.raises(ValueError):
            retry_policy.call(func)
        assert len(calls) == 1

    def test_auth_expired_refreshes_without_sleep(
        self, retry_policy: RetryPolicy, sleeps: SleepRecorder
    ) -> None:
        """Auth expiry triggers the refresh hook and retries immediately."""
        refreshed: list[int] = []
        retry_policy.set_on_auth_expired(lambda: refreshed.append(1))
        func, calls = failing([AuthExpiredError("expired", 401)])

        assert retry_policy.call(func) == "ok"

        assert len(calls) == 2
        assert refreshed == [1]
        assert sleeps.delays == []

    def test_rate_limited_waits_suggested_interval(
        self, retry_policy: RetryPolicy, sleeps: SleepRecorder
    ) -> None:
        """The wait after a rate limit is at least the suggested interval."""
        func, _ = failing([RateLimitedError("slow down", retry_after=10.0)])

        retry_policy.call(func)

        assert sleeps.delays == [10.0]
