"""Fixtures for end-to-end tests against a fake object API."""

from __future__ import annotations

import itertools
import json
import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from urllib.parse import unquote

import httpx
import pytest

from artifactsync.client.api import HTTPRemoteStore
from artifactsync.core.chunking import get_content_digest
from artifactsync.core.config import RemoteConfig

from tests.conftest import FakeClock

CONTENT_RANGE = re.compile(r"bytes (\d+)-(\d+)/(\d+)")


@dataclass
class StoredObject:
    data: bytes
    version: str
    last_modified: float

    def to_json(self) -> dict[str, object]:
        return {
            "version": self.version,
            "last_modified": self.last_modified,
            "sha256": get_content_digest(self.data),
            "size": len(self.data),
        }


@dataclass
class UploadSession:
    path: str
    size: int
    if_match: str | None
    buffer: bytearray = field(default_factory=bytearray)


class FakeObjectServer:
    """In-process implementation of the object API, served through httpx.MockTransport."""

    def __init__(self, clock: Callable[[], float], token: str = "test-token") -> None:
        self._clock = clock
        self._token = token
        self._lock = threading.Lock()
        self._versions = itertools.count(1)
        self._session_ids = itertools.count(1)
        self.objects: dict[str, StoredObject] = {}
        self.sessions: dict[str, UploadSession] = {}
        self.requests: list[httpx.Request] = []
        self._failures: list[httpx.Response] = []

    def fail_next(self, *responses: httpx.Response) -> None:
        """Answer the next write requests with these responses instead."""
        with self._lock:
            self._failures.extend(responses)

    def write_out_of_band(self, path: str, data: bytes, last_modified: float) -> StoredObject:
        """Change an object as another writer would."""
        with self._lock:
            return self._store(path, data, last_modified)

    def _store(self, path: str, data: bytes, last_modified: float | None = None) -> StoredObject:
        stored = StoredObject(
            data=bytes(data),
            version=f"v{next(self._versions)}",
            last_modified=self._clock() if last_modified is None else last_modified,
        )
        self.objects[path] = stored
        return stored

    def _precondition_failed(self, path: str, if_match: str | None) -> bool:
        if if_match is None:
            return False
        current = self.objects.get(path)
        return current is None or current.version != if_match

    def handle(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            if request.headers.get("Authorization") != f"Bearer {self._token}":
                return httpx.Response(401, json={"detail": "bad token"})
            if request.method in ("PUT", "POST") and self._failures:
                return self._failures.pop(0)

            path = unquote(request.url.path)
            if path.startswith("/api/objects/"):
                return self._handle_object(request, path[len("/api/objects/"):])
            if path == "/api/uploads" and request.method == "POST":
                body = json.loads(request.content)
                session_id = f"s{next(self._session_ids)}"
                self.sessions[session_id] = UploadSession(
                    path=body["path"], size=body["size"], if_match=body.get("if_match")
                )
                return httpx.Response(201, json={"session_id": session_id})
            if path.startswith("/api/uploads/") and request.method == "PUT":
                return self._handle_range(request, path[len("/api/uploads/"):])
            return httpx.Response(404, json={"detail": "no route"})

    def _handle_object(self, request: httpx.Request, key: str) -> httpx.Response:
        if request.method == "GET" and key.endswith("/metadata"):
            stored = self.objects.get(key[: -len("/metadata")])
            if stored is None:
                return httpx.Response(404, json={"detail": "not found"})
            return httpx.Response(200, json=stored.to_json())
        if request.method == "GET":
            stored = self.objects.get(key)
            if stored is None:
                return httpx.Response(404, json={"detail": "not found"})
            return httpx.Response(200, content=stored.data)
        if request.method == "PUT":
            if self._precondition_failed(key, request.headers.get("If-Match")):
                return httpx.Response(412, json={"detail": "version mismatch"})
            return httpx.Response(200, json=self._store(key, request.content).to_json())
        return httpx.Response(405)

    def _handle_range(self, request: httpx.Request, session_id: str) -> httpx.Response:
        session = self.sessions.get(session_id)
        if session is None:
            return httpx.Response(404, json={"detail": "unknown session"})
        match = CONTENT_RANGE.fullmatch(request.headers.get("Content-Range", ""))
        if match is None or int(match.group(1)) != len(session.buffer):
            return httpx.Response(416)

        session.buffer.extend(request.content)
        if len(session.buffer) < session.size:
            return httpx.Response(202)

        del self.sessions[session_id]
        if self._precondition_failed(session.path, session.if_match):
            return httpx.Response(412, json={"detail": "version mismatch"})
        return httpx.Response(201, json=self._store(session.path, bytes(session.buffer)).to_json())


@pytest.fixture
def server(clock: FakeClock) -> FakeObjectServer:
    """Fake object API sharing the test clock."""
    return FakeObjectServer(clock)


@pytest.fixture
def http_store(server: FakeObjectServer) -> Iterator[HTTPRemoteStore]:
    """HTTP store client wired to the fake server."""
    store = HTTPRemoteStore(
        RemoteConfig(base_url="http://store.test", token="test-token"),
        transport=httpx.MockTransport(server.handle),
    )
    yield store
    store.close()
