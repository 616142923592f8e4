"""Conflict detection and resolution for uploads.

This module provides:
- ConflictDecision: What to do with an operation facing a remote change
- ConflictResolution: Result of a resolution
- ConflictResolver: Applies the last-timestamp-wins rule and refreshes state

Decision rules:

    | Remote object           | Local state                 | Decision  |
    |-------------------------|-----------------------------|-----------|
    | missing                 | any                         | PROCEED   |
    | version == state        | matching version            | PROCEED   |
    | changed elsewhere       | created_at >= last_modified | PROCEED   |
    | changed elsewhere       | created_at <  last_modified | SUPERSEDE |

Ties go to the local operation. A superseded operation is dropped and
the sync state is refreshed to the remote version, so the next report is
compared against what the store actually holds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from artifactsync.core.chunking import get_content_digest

if TYPE_CHECKING:
    from artifactsync.client.api import RemoteStore, RemoteVersionInfo
    from artifactsync.client.state import SyncStateStore
    from artifactsync.client.sync.retry import RetryPolicy
    from artifactsync.client.sync.types import SyncOperation, SyncState

logger = logging.getLogger(__name__)


class ConflictDecision(Enum):
    """Outcome of conflict resolution."""

    PROCEED = "proceed"  # Upload, overwriting the remote
    SUPERSEDE = "supersede"  # Remote wins, drop the operation


@dataclass(frozen=True)
class ConflictResolution:
    """Result of conflict resolution.

    Attributes:
        decision: What to do with the operation.
        reason: Short explanation for logs.
        expected_version: Version the upload should be conditional on.
    """

    decision: ConflictDecision
    reason: str
    expected_version: str | None = None

    @property
    def proceed(self) -> bool:
        return self.decision == ConflictDecision.PROCEED


class ConflictResolver:
    """Decides between a local operation and a concurrent remote change."""

    def __init__(
        self,
        store: RemoteStore,
        state_store: SyncStateStore,
        retry_policy: RetryPolicy,
    ) -> None:
        self._store = store
        self._states = state_store
        self._retry = retry_policy

    def resolve(
        self,
        operation: SyncOperation,
        state: SyncState | None,
        remote: RemoteVersionInfo | None,
    ) -> ConflictResolution:
        """Decide whether an operation may overwrite the remote object.

        Append-growing targets follow the same rule as whole-replace ones.

        Args:
            operation: The pending operation.
            state: Last known sync state of the target (None = never synced).
            remote: Current remote metadata (None = object missing).

        Returns:
            ConflictResolution with the decision.
        """
        if remote is None:
            return ConflictResolution(ConflictDecision.PROCEED, "remote object missing")

        if state is not None and state.version == remote.version:
            return ConflictResolution(
                ConflictDecision.PROCEED,
                "remote unchanged since last sync",
                expected_version=remote.version,
            )

        if operation.created_at >= remote.last_modified:
            logger.info(
                "Conflict on %s: local change (%.3f) is newer than remote %s (%.3f), overwriting",
                operation.target.name,
                operation.created_at,
                remote.version,
                remote.last_modified,
            )
            return ConflictResolution(
                ConflictDecision.PROCEED,
                "local change is newer",
                expected_version=remote.version,
            )

        logger.info(
            "Conflict on %s: remote %s (%.3f) is newer than local change (%.3f), superseding %r",
            operation.target.name,
            remote.version,
            remote.last_modified,
            operation.created_at,
            operation,
        )
        return ConflictResolution(ConflictDecision.SUPERSEDE, "remote change is newer")

    def refresh_state(self, target: str, path: str, remote: RemoteVersionInfo) -> SyncState:
        """Record the remote version as the target's sync state.

        The digest comes from the remote metadata when the store reports
        one; otherwise the object is fetched and hashed.

        Args:
            target: Target name.
            path: Remote object path.
            remote: Remote metadata that won.

        Returns:
            The refreshed state.
        """
        digest = remote.digest
        if digest is None:
            content = self._retry.call(
                lambda: self._store.get_object(path),
                description=f"fetch {path}",
            )
            digest = get_content_digest(content)

        state = self._states.record(
            target,
            version=remote.version,
            digest=digest,
            remote_modified=remote.last_modified,
        )
        logger.debug("Refreshed state of %s to remote version %s", target, remote.version)
        return state
