"""Shared fixtures for artifactsync tests."""

from __future__ import annotations

import random
from collections.abc import Iterator
from pathlib import Path

import pytest

from artifactsync.client.memory import InMemoryRemoteStore
from artifactsync.client.state import SyncStateStore
from artifactsync.client.sync.queue import OfflineQueue
from artifactsync.client.sync.retry import RetryPolicy
from artifactsync.client.sync.types import ContentKind, SyncTarget


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class UpperBoundRandom(random.Random):
    """Jitter source that always picks the top of the range."""

    def uniform(self, a: float, b: float) -> float:
        return b


class SleepRecorder:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryRemoteStore:
    """In-memory remote store sharing the fake clock."""
    return InMemoryRemoteStore(clock=clock)


@pytest.fixture
def sleeps() -> SleepRecorder:
    """Recorder for retry sleeps."""
    return SleepRecorder()


@pytest.fixture
def retry_policy(sleeps: SleepRecorder) -> RetryPolicy:
    """Retry policy that never actually sleeps and uses the upper jitter bound."""
    return RetryPolicy(rng=UpperBoundRandom(), sleep=sleeps)


@pytest.fixture
def states() -> Iterator[SyncStateStore]:
    """Throwaway sync state store."""
    state_store = SyncStateStore(":memory:")
    yield state_store
    state_store.close()


@pytest.fixture
def queue(tmp_path: Path) -> Iterator[OfflineQueue]:
    """Offline queue persisted in a temporary directory."""
    offline_queue = OfflineQueue(tmp_path / "queue.db")
    yield offline_queue
    offline_queue.close()


@pytest.fixture
def status_target() -> SyncTarget:
    """Whole-replace status document target."""
    return SyncTarget(name="dashboard-status", remote_path="status/dashboard.json")


@pytest.fixture
def log_target() -> SyncTarget:
    """Append-growing log target."""
    return SyncTarget(
        name="run-log",
        remote_path="logs/run.log",
        kind=ContentKind.APPEND_GROWING,
    )
