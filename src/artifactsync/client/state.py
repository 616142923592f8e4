"""Durable sync state per target.

This module provides:
- SyncStateStore: SQLite-based record of the last successful sync per target

Architecture:
    One row per target holding the remote version token observed right
    after our last successful write (or after a conflict refresh), the
    digest of the content that produced it, and timestamps. The upload
    worker is the only writer; everything else reads.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path

from artifactsync.client.sync.types import SyncState

logger = logging.getLogger(__name__)


def _row_to_state(row: sqlite3.Row) -> SyncState:
    return SyncState(
        target=row["target"],
        version=row["version"],
        digest=row["digest"],
        synced_at=row["synced_at"],
        remote_modified=row["remote_modified"],
    )


class SyncStateStore:
    """SQLite-based sync state.

    Pass ":memory:" as db_path for a throwaway store.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the state database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = db_path
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sync_state (
                target TEXT PRIMARY KEY,
                version TEXT NOT NULL,
                digest TEXT NOT NULL,
                synced_at REAL NOT NULL,
                remote_modified REAL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def get(self, target: str) -> SyncState | None:
        """Get the sync state of a target.

        Args:
            target: Target name.

        Returns:
            SyncState if the target was ever synced, None otherwise.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sync_state WHERE target = ?",
                (target,),
            ).fetchone()
        return _row_to_state(row) if row else None

    def list_states(self) -> list[SyncState]:
        """List the state of every synced target."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM sync_state ORDER BY target"
            ).fetchall()
        return [_row_to_state(row) for row in rows]

    def record(
        self,
        target: str,
        version: str,
        digest: str,
        remote_modified: float | None = None,
        synced_at: float | None = None,
    ) -> SyncState:
        """Record a confirmed sync (upsert).

        Args:
            target: Target name.
            version: Remote version token now on the store.
            digest: Digest of the content behind that version.
            remote_modified: Remote last-modified time of that version.
            synced_at: When the sync happened (defaults to now).

        Returns:
            The recorded state.
        """
        state = SyncState(
            target=target,
            version=version,
            digest=digest,
            synced_at=time.time() if synced_at is None else synced_at,
            remote_modified=remote_modified,
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO sync_state (
                    target, version, digest, synced_at, remote_modified
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (state.target, state.version, state.digest, state.synced_at, state.remote_modified),
            )
        logger.debug("Recorded sync state for %s: version %s", target, version)
        return state

    def remove(self, target: str) -> None:
        """Forget the sync state of a target."""
        with self._lock:
            self._conn.execute("DELETE FROM sync_state WHERE target = ?", (target,))
