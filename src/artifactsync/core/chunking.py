"""Fixed-size range planning for chunked uploads.

This module provides:
- UploadChunk: One byte range of a payload
- plan_chunks: Split a payload length into contiguous ranges
- get_content_digest: SHA-256 digest used for change detection

Ranges are fixed-size (not content-defined) because the remote store
accepts a session only as a monotonic sequence of byte ranges.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass

# Size configuration (in bytes)
DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024        # 4 MB
DEFAULT_UPLOAD_THRESHOLD = 4 * 1024 * 1024  # 4 MB


@dataclass(frozen=True)
class UploadChunk:
    """A byte range [start, end) within a payload.

    Attributes:
        start: Offset of the first byte.
        end: Offset one past the last byte.
        index: 1-based position of the range in the session.
        total: Number of ranges in the session.
    """

    start: int
    end: int
    index: int
    total: int

    @property
    def size(self) -> int:
        """Return the size of this range in bytes."""
        return self.end - self.start

    def content_range(self, total_length: int) -> str:
        """Format as an HTTP Content-Range value (inclusive end)."""
        return f"bytes {self.start}-{self.end - 1}/{total_length}"

    def slice(self, data: bytes) -> bytes:
        """Return the bytes of this range from the full payload."""
        return data[self.start : self.end]


def get_content_digest(data: bytes) -> str:
    """Compute SHA-256 digest of content.

    Args:
        data: Raw bytes to hash.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters).
    """
    return hashlib.sha256(data).hexdigest()


def plan_chunks(total_length: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[UploadChunk]:
    """Split a payload of total_length bytes into ordered ranges.

    A payload of ``k * chunk_size + r`` bytes (r > 0) yields k + 1 ranges;
    the last one holds the remaining r bytes.

    Args:
        total_length: Payload size in bytes.
        chunk_size: Maximum size of each range.

    Returns:
        Ranges in increasing index order. Empty for an empty payload.

    Raises:
        ValueError: If chunk_size is not positive or total_length is negative.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if total_length < 0:
        raise ValueError(f"total_length must not be negative, got {total_length}")

    total = -(-total_length // chunk_size)  # ceiling division
    return list(_iter_ranges(total_length, chunk_size, total))


def _iter_ranges(total_length: int, chunk_size: int, total: int) -> Iterator[UploadChunk]:
    for i in range(total):
        start = i * chunk_size
        yield UploadChunk(
            start=start,
            end=min(start + chunk_size, total_length),
            index=i + 1,
            total=total,
        )
