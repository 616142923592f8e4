"""In-memory remote store.

This module provides:
- InMemoryRemoteStore: A RemoteStore that keeps objects in a dict

It behaves like the HTTP store (version tokens, conditional writes,
monotonic chunk sessions) and adds hooks for exercising the engine:
scripted failures, a call log and out-of-band writes.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field

from artifactsync.client.api import ConflictError, FatalRemoteError, RemoteVersionInfo
from artifactsync.core.chunking import UploadChunk, get_content_digest

logger = logging.getLogger(__name__)


@dataclass
class _StoredObject:
    data: bytes
    info: RemoteVersionInfo


@dataclass
class _UploadSession:
    path: str
    total_length: int
    if_match: str | None
    buffer: bytearray = field(default_factory=bytearray)
    next_index: int = 1


class InMemoryRemoteStore:
    """Thread-safe in-memory remote store.

    Usage:
        store = InMemoryRemoteStore()
        store.fail_next("put_object", ServerError("boom", 503))
        store.write_out_of_band("status.json", b"{}")
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Source of last-modified timestamps.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._objects: dict[str, _StoredObject] = {}
        self._sessions: dict[str, _UploadSession] = {}
        self._versions = itertools.count(1)
        self._session_ids = itertools.count(1)
        self._failures: dict[str, deque[Exception]] = defaultdict(deque)

        # (operation, path or session) in call order
        self.calls: list[tuple[str, str]] = []
        # (session, chunk index) in submission order
        self.chunk_log: list[tuple[str, int]] = []
        self.credential_invalidations = 0

    # === Test hooks ===

    def fail_next(self, operation: str, *errors: Exception) -> None:
        """Make the next calls of an operation raise the given errors in order."""
        with self._lock:
            self._failures[operation].extend(errors)

    def write_out_of_band(
        self, path: str, data: bytes, last_modified: float | None = None
    ) -> RemoteVersionInfo:
        """Modify an object as another writer would, bypassing the call log."""
        with self._lock:
            return self._store(path, data, last_modified)

    def content(self, path: str) -> bytes | None:
        """Return the stored bytes of path (None if missing)."""
        with self._lock:
            stored = self._objects.get(path)
            return stored.data if stored else None

    def count(self, operation: str) -> int:
        """Number of calls made to an operation."""
        with self._lock:
            return sum(1 for op, _ in self.calls if op == operation)

    @property
    def upload_calls(self) -> int:
        """Number of uploads started (whole puts plus chunk sessions)."""
        return self.count("put_object") + self.count("open_chunk_session")

    # === Internals ===

    def _record(self, operation: str, subject: str) -> None:
        self.calls.append((operation, subject))
        failures = self._failures.get(operation)
        if failures:
            error = failures.popleft()
            logger.debug("Injected failure for %s(%s): %s", operation, subject, error)
            raise error

    def _check_precondition(self, path: str, if_match: str | None) -> None:
        if if_match is None:
            return
        current = self._objects.get(path)
        if current is None or current.info.version != if_match:
            raise ConflictError(f"Version mismatch on {path}", 412)

    def _store(self, path: str, data: bytes, last_modified: float | None = None) -> RemoteVersionInfo:
        info = RemoteVersionInfo(
            version=f"etag-{next(self._versions)}",
            last_modified=self._clock() if last_modified is None else last_modified,
            digest=get_content_digest(data),
            size=len(data),
        )
        self._objects[path] = _StoredObject(data=bytes(data), info=info)
        return info

    # === RemoteStore protocol ===

    def put_object(
        self, path: str, data: bytes, if_match: str | None = None
    ) -> RemoteVersionInfo:
        """Replace the whole object at path."""
        with self._lock:
            self._record("put_object", path)
            self._check_precondition(path, if_match)
            return self._store(path, data)

    def open_chunk_session(
        self, path: str, total_length: int, if_match: str | None = None
    ) -> str:
        """Open a chunked upload session."""
        with self._lock:
            self._record("open_chunk_session", path)
            self._check_precondition(path, if_match)
            session_id = f"session-{next(self._session_ids)}"
            self._sessions[session_id] = _UploadSession(
                path=path, total_length=total_length, if_match=if_match
            )
            return session_id

    def put_chunk(
        self, session: str, chunk: UploadChunk, data: bytes
    ) -> tuple[bool, RemoteVersionInfo | None]:
        """Append one range; commit the object on the final range."""
        with self._lock:
            self._record("put_chunk", session)
            upload = self._sessions.get(session)
            if upload is None:
                raise FatalRemoteError(f"Unknown upload session: {session}", 404)

            if chunk.index != upload.next_index or chunk.start != len(upload.buffer):
                logger.debug(
                    "Rejected out-of-order range %d (expected %d)",
                    chunk.index,
                    upload.next_index,
                )
                return False, None

            self.chunk_log.append((session, chunk.index))
            upload.buffer.extend(data)
            upload.next_index += 1

            if len(upload.buffer) < upload.total_length:
                return True, None

            del self._sessions[session]
            self._check_precondition(upload.path, upload.if_match)
            return True, self._store(upload.path, bytes(upload.buffer))

    def abandon_chunk_session(self, session: str) -> None:
        """Discard an incomplete session."""
        with self._lock:
            self.calls.append(("abandon_chunk_session", session))
            self._sessions.pop(session, None)

    @property
    def open_sessions(self) -> int:
        """Number of sessions opened and not yet committed or abandoned."""
        with self._lock:
            return len(self._sessions)

    def get_metadata(self, path: str) -> RemoteVersionInfo | None:
        """Read the current version of path."""
        with self._lock:
            self._record("get_metadata", path)
            stored = self._objects.get(path)
            return stored.info if stored else None

    def get_object(self, path: str) -> bytes:
        """Read the current content of path."""
        with self._lock:
            self._record("get_object", path)
            stored = self._objects.get(path)
            if stored is None:
                raise FatalRemoteError(f"Object not found: {path}", 404)
            return stored.data

    def invalidate_credentials(self) -> None:
        """Count credential refreshes."""
        with self._lock:
            self.credential_invalidations += 1
