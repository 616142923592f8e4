"""Payload upload, whole or in ordered ranges.

This module provides:
- ChunkedUploadSession: Uploads a payload as one put or as a range session
- SessionAbortedError: A range session was given up after a range failed
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from artifactsync.client.api import ServerError
from artifactsync.client.sync.retry import RetryExhaustedError
from artifactsync.client.sync.types import UploadError
from artifactsync.core.chunking import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_UPLOAD_THRESHOLD,
    UploadChunk,
    plan_chunks,
)

if TYPE_CHECKING:
    from artifactsync.client.api import RemoteStore, RemoteVersionInfo
    from artifactsync.client.sync.retry import RetryPolicy

logger = logging.getLogger(__name__)


class SessionAbortedError(RetryExhaustedError):
    """A range used up its retries and its upload session was abandoned.

    Unlike other exhausted calls this leaves the operation retryable: the
    next attempt opens a new session and starts from the first range.

    Attributes:
        session: Handle of the abandoned session.
    """

    def __init__(self, session: str, exhausted: RetryExhaustedError) -> None:
        self.session = session
        super().__init__(
            exhausted.description,
            exhausted.failure_class,
            exhausted.attempts,
            exhausted.last_error,
        )


class ChunkedUploadSession:
    """Uploads payloads to the remote store.

    Payloads up to the threshold go out in a single put. Larger payloads
    are split into fixed-size ranges and submitted strictly in index
    order, one at a time, each range under the retry policy. A range that
    exhausts its retries fails the whole upload; nothing is resumed, the
    next attempt starts a new session from the first range.
    """

    def __init__(
        self,
        store: RemoteStore,
        retry_policy: RetryPolicy,
        threshold: int = DEFAULT_UPLOAD_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the uploader.

        Args:
            store: Remote store client.
            retry_policy: Policy applied to each remote call.
            threshold: Largest payload uploaded in a single request.
            chunk_size: Size of each range for larger payloads.
        """
        self._store = store
        self._retry = retry_policy
        self._threshold = threshold
        self._chunk_size = chunk_size

    def upload(
        self,
        path: str,
        content: bytes,
        expected_version: str | None = None,
    ) -> RemoteVersionInfo:
        """Upload content to path.

        Args:
            path: Remote object path.
            content: Full payload.
            expected_version: Remote version the write is conditional on.

        Returns:
            RemoteVersionInfo of the committed object.

        Raises:
            SessionAbortedError: If a range used up its retries.
            RetryExhaustedError: If any other call used up its retries.
            ConflictError: If the remote changed since expected_version.
            RemoteStoreError: For fatal failures.
        """
        total = len(content)
        if total <= self._threshold:
            logger.debug("Uploading %s in one request (%d bytes)", path, total)
            return self._retry.call(
                lambda: self._store.put_object(path, content, if_match=expected_version),
                description=f"put {path}",
            )

        return self._upload_chunked(path, content, expected_version)

    def _upload_chunked(
        self,
        path: str,
        content: bytes,
        expected_version: str | None,
    ) -> RemoteVersionInfo:
        total = len(content)
        chunks = plan_chunks(total, self._chunk_size)
        logger.info(f"Uploading {path}: {total} bytes in {len(chunks)} ranges")

        session = self._retry.call(
            lambda: self._store.open_chunk_session(path, total, if_match=expected_version),
            description=f"open session for {path}",
        )

        info: RemoteVersionInfo | None = None
        committed = False
        try:
            for chunk in chunks:
                info = self._upload_chunk_with_retry(session, chunk, content, path)
            committed = True
        except RetryExhaustedError as e:
            logger.warning(f"Abandoning upload session {session} for {path}")
            raise SessionAbortedError(session, e) from e
        finally:
            if not committed:
                self._store.abandon_chunk_session(session)

        if info is None:
            # Store committed the object without echoing its version
            info = self._retry.call(
                lambda: self._store.get_metadata(path),
                description=f"metadata for {path}",
            )
            if info is None:
                raise UploadError(f"Upload of {path} finished but object is missing")

        logger.info(f"Uploaded {path}: {len(chunks)} ranges, version {info.version}")
        return info

    def _upload_chunk_with_retry(
        self,
        session: str,
        chunk: UploadChunk,
        content: bytes,
        path: str,
    ) -> RemoteVersionInfo | None:
        """Upload one range under the retry policy.

        A range the store does not accept counts as a server error for
        that range, so it is retried like one.
        """
        data = chunk.slice(content)

        def do_upload() -> RemoteVersionInfo | None:
            accepted, info = self._store.put_chunk(session, chunk, data)
            if not accepted:
                raise ServerError(
                    f"Range {chunk.index}/{chunk.total} of {path} not accepted"
                )
            return info

        info = self._retry.call(
            do_upload,
            description=f"range {chunk.index}/{chunk.total} of {path}",
        )
        logger.debug("Uploaded range %d/%d of %s", chunk.index, chunk.total, path)
        return info
