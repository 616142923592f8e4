"""End-to-end sync through the HTTP store client and a fake object API."""

from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest

from artifactsync.client.api import HTTPRemoteStore
from artifactsync.client.state import SyncStateStore
from artifactsync.client.sync import OfflineQueue, RetryPolicy, SyncScheduler, SyncTarget
from artifactsync.core.config import EngineConfig

from tests.conftest import FakeClock
from tests.integration.conftest import FakeObjectServer

WAIT = 5.0


@pytest.fixture
def scheduler(
    http_store: HTTPRemoteStore,
    queue: OfflineQueue,
    states: SyncStateStore,
    retry_policy: RetryPolicy,
    clock: FakeClock,
    status_target: SyncTarget,
    log_target: SyncTarget,
) -> Iterator[SyncScheduler]:
    """Scheduler over HTTP with small chunks and no debounce."""
    config = EngineConfig(upload_threshold=8, chunk_size=4)
    scheduler = SyncScheduler(
        http_store,
        queue,
        states,
        config=config,
        targets=[status_target, log_target],
        retry_policy=retry_policy,
        clock=clock,
    )
    scheduler.debounce(status_target, 0)
    scheduler.debounce(log_target, 0)
    scheduler.start(run_ticker=False)
    yield scheduler
    scheduler.shutdown()


def sync(scheduler: SyncScheduler, clock: FakeClock) -> None:
    """Dispatch eligible work and wait for it."""
    clock.advance(0.001)
    scheduler.tick()
    assert scheduler.wait_idle(timeout=WAIT)


class TestHttpSync:
    """Tests for the full upload path over HTTP."""

    def test_small_object_and_conditional_update(
        self,
        scheduler: SyncScheduler,
        server: FakeObjectServer,
        status_target: SyncTarget,
        clock: FakeClock,
    ) -> None:
        """The first write is unconditional, the next one carries If-Match."""
        scheduler.report_change(status_target, b'{"n":1}')
        sync(scheduler, clock)
        first_version = server.objects[status_target.remote_path].version

        scheduler.report_change(status_target, b'{"n":2}')
        sync(scheduler, clock)

        assert server.objects[status_target.remote_path].data == b'{"n":2}'
        puts = [r for r in server.requests if r.method == "PUT"]
        assert "If-Match" not in puts[0].headers
        assert puts[1].headers["If-Match"] == first_version

    def test_chunked_upload(
        self,
        scheduler: SyncScheduler,
        server: FakeObjectServer,
        log_target: SyncTarget,
        clock: FakeClock,
    ) -> None:
        """Payloads above the threshold go out as ordered ranges."""
        content = b"line one\nline two\n"
        scheduler.report_change(log_target, content)
        sync(scheduler, clock)

        assert server.objects[log_target.remote_path].data == content
        ranges = [
            r.headers["Content-Range"]
            for r in server.requests
            if r.url.path.startswith("/api/uploads/")
        ]
        assert ranges == [
            "bytes 0-3/18",
            "bytes 4-7/18",
            "bytes 8-11/18",
            "bytes 12-15/18",
            "bytes 16-17/18",
        ]

    def test_server_error_retried(
        self,
        scheduler: SyncScheduler,
        server: FakeObjectServer,
        status_target: SyncTarget,
        clock: FakeClock,
    ) -> None:
        """A 503 is retried within the same dispatch."""
        server.fail_next(httpx.Response(503, json={"detail": "busy"}))

        scheduler.report_change(status_target, b"{}")
        sync(scheduler, clock)

        assert server.objects[status_target.remote_path].data == b"{}"
        assert scheduler.status(status_target).pending_count == 0

    def test_precondition_failure_resolved(
        self,
        scheduler: SyncScheduler,
        server: FakeObjectServer,
        status_target: SyncTarget,
        clock: FakeClock,
    ) -> None:
        """A 412 sends the worker back to conflict resolution."""
        server.fail_next(httpx.Response(412, json={"detail": "version mismatch"}))

        scheduler.report_change(status_target, b"{}")
        sync(scheduler, clock)

        assert server.objects[status_target.remote_path].data == b"{}"
        metadata_reads = [r for r in server.requests if r.url.path.endswith("/metadata")]
        assert len(metadata_reads) == 2

    def test_newer_remote_change_kept(
        self,
        scheduler: SyncScheduler,
        server: FakeObjectServer,
        states: SyncStateStore,
        status_target: SyncTarget,
        clock: FakeClock,
    ) -> None:
        """A remote write newer than the local change wins."""
        scheduler.report_change(status_target, b"local")
        remote = server.write_out_of_band(status_target.remote_path, b"remote", clock() + 1)
        sync(scheduler, clock)

        assert server.objects[status_target.remote_path].data == b"remote"
        assert states.get(status_target.name).version == remote.version
        assert scheduler.stats.superseded == 1
