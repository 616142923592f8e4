"""Upload worker.

This module provides:
- UploadWorker: Carries one SyncOperation through resolution and upload
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from artifactsync.client.api import ConflictError
from artifactsync.client.sync.types import OperationOutcome, UploadError
from artifactsync.client.sync.workers.base import BaseWorker, WorkerContext

if TYPE_CHECKING:
    from artifactsync.client.api import RemoteStore, RemoteVersionInfo
    from artifactsync.client.state import SyncStateStore
    from artifactsync.client.sync.conflict import ConflictResolver
    from artifactsync.client.sync.retry import RetryPolicy
    from artifactsync.client.sync.types import SyncOperation, SyncState
    from artifactsync.client.sync.upload import ChunkedUploadSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONFLICT_ROUNDS = 3


class UploadWorker(BaseWorker):
    """Worker for uploading one operation to the remote store.

    Steps:
    1. Skip if the content digest matches the last synced digest
    2. Read remote metadata and let the conflict resolver decide
    3. Upload conditionally on the remote version we resolved against
    4. Record the new sync state

    A conditional write rejected because the remote moved again sends
    the worker back to step 2, at most max_conflict_rounds times.

    Usage:
        worker = UploadWorker(store, states, resolver, uploader, retry)
        result = worker.execute(operation)
    """

    def __init__(
        self,
        store: RemoteStore,
        state_store: SyncStateStore,
        resolver: ConflictResolver,
        uploader: ChunkedUploadSession,
        retry_policy: RetryPolicy,
        max_conflict_rounds: int = DEFAULT_MAX_CONFLICT_ROUNDS,
    ) -> None:
        """Initialize the upload worker.

        Args:
            store: Remote store client.
            state_store: Sync state store.
            resolver: Conflict resolver.
            uploader: Upload session for payloads.
            retry_policy: Policy for metadata reads.
            max_conflict_rounds: Re-resolutions allowed after a rejected write.
        """
        super().__init__()
        self._store = store
        self._states = state_store
        self._resolver = resolver
        self._uploader = uploader
        self._retry = retry_policy
        self._max_conflict_rounds = max_conflict_rounds

    @property
    def worker_type(self) -> str:
        """Return worker type name."""
        return "upload"

    def _do_work(self, ctx: WorkerContext) -> OperationOutcome:
        """Perform the upload.

        Args:
            ctx: Worker context with the operation.

        Returns:
            COMPLETED, UNCHANGED or SUPERSEDED.

        Raises:
            ConflictError: If the remote kept changing for every round.
            RetryExhaustedError: If a remote call used up its retries.
            UploadError: If the resolver superseded a missing object.
            RemoteStoreError: For fatal failures.
        """
        operation = ctx.operation
        name = operation.target.name
        path = operation.target.remote_path

        state = self._states.get(name)
        if state is not None and state.digest == operation.digest:
            logger.debug("Skipping %r: content unchanged since last sync", operation)
            return OperationOutcome.UNCHANGED

        last_conflict: ConflictError | None = None
        for round_number in range(1, self._max_conflict_rounds + 1):
            remote = self._retry.call(
                lambda: self._store.get_metadata(path),
                description=f"metadata for {path}",
            )

            resolution = self._resolver.resolve(operation, state, remote)
            if not resolution.proceed:
                if remote is None:
                    raise UploadError(
                        f"Cannot supersede {operation!r}: {path} has no remote version"
                    )
                self._resolver.refresh_state(name, path, remote)
                return OperationOutcome.SUPERSEDED

            if remote is not None and remote.digest == operation.digest:
                # Remote already holds this content
                logger.info(f"Remote {path} already matches {operation!r}, marking as synced")
                self._record(operation, remote)
                return OperationOutcome.UNCHANGED

            try:
                info = self._uploader.upload(
                    path,
                    operation.content,
                    expected_version=resolution.expected_version,
                )
            except ConflictError as e:
                last_conflict = e
                logger.info(
                    "Conditional write of %s rejected (round %d/%d): %s",
                    path,
                    round_number,
                    self._max_conflict_rounds,
                    e,
                )
                state = self._states.get(name)
                continue

            self._record(operation, info)
            logger.info(f"Synced {operation!r} to {path} (version {info.version})")
            return OperationOutcome.COMPLETED

        raise ConflictError(
            f"{path} still conflicting after {self._max_conflict_rounds} rounds: {last_conflict}",
            last_conflict.status_code if last_conflict else None,
        )

    def _record(self, operation: SyncOperation, info: RemoteVersionInfo) -> SyncState:
        return self._states.record(
            operation.target.name,
            version=info.version,
            digest=operation.digest,
            remote_modified=info.last_modified,
        )
