"""Tests for chunk planning and content digests."""

from __future__ import annotations

import hashlib

import pytest

from artifactsync.core.chunking import (
    DEFAULT_CHUNK_SIZE,
    UploadChunk,
    get_content_digest,
    plan_chunks,
)


class TestPlanChunks:
    """Tests for plan_chunks()."""

    @pytest.mark.parametrize(
        ("k", "r", "chunk_size"),
        [(1, 1, 4), (2, 3, 4), (5, 1, 10), (3, 9, 10), (1, 1, DEFAULT_CHUNK_SIZE)],
    )
    def test_remainder_adds_one_range(self, k: int, r: int, chunk_size: int) -> None:
        """k full chunks plus a remainder should give k+1 ranges."""
        chunks = plan_chunks(k * chunk_size + r, chunk_size)
        assert len(chunks) == k + 1
        assert chunks[-1].size == r

    def test_exact_multiple(self) -> None:
        """A length that is a multiple of the chunk size should give no short range."""
        chunks = plan_chunks(12, 4)
        assert len(chunks) == 3
        assert all(c.size == 4 for c in chunks)

    def test_ranges_partition_payload(self) -> None:
        """Ranges should be contiguous, ordered and cover every byte once."""
        chunks = plan_chunks(23, 5)
        assert chunks[0].start == 0
        assert chunks[-1].end == 23
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start == previous.end
            assert current.index == previous.index + 1
        assert [c.index for c in chunks] == list(range(1, len(chunks) + 1))
        assert all(c.total == len(chunks) for c in chunks)

    def test_single_range_when_smaller_than_chunk(self) -> None:
        """A payload smaller than a chunk should be a single range."""
        chunks = plan_chunks(3, 10)
        assert chunks == [UploadChunk(start=0, end=3, index=1, total=1)]

    def test_empty_payload(self) -> None:
        """An empty payload has no ranges."""
        assert plan_chunks(0, 4) == []

    def test_invalid_chunk_size(self) -> None:
        """Chunk size must be positive."""
        with pytest.raises(ValueError):
            plan_chunks(10, 0)

    def test_negative_length(self) -> None:
        """Length must not be negative."""
        with pytest.raises(ValueError):
            plan_chunks(-1, 4)


class TestUploadChunk:
    """Tests for UploadChunk."""

    def test_content_range(self) -> None:
        """Content-Range uses an inclusive end."""
        chunk = UploadChunk(start=4, end=8, index=2, total=3)
        assert chunk.content_range(10) == "bytes 4-7/10"

    def test_slice(self) -> None:
        """slice() should return the bytes covered by the range."""
        chunk = UploadChunk(start=2, end=5, index=1, total=1)
        assert chunk.slice(b"abcdefgh") == b"cde"
        assert chunk.size == 3


class TestContentDigest:
    """Tests for get_content_digest()."""

    def test_sha256_hex(self) -> None:
        """Digest is the SHA-256 hex digest."""
        assert get_content_digest(b"hello") == hashlib.sha256(b"hello").hexdigest()

    def test_different_content_different_digest(self) -> None:
        """Different content gives different digests."""
        assert get_content_digest(b"a") != get_content_digest(b"b")
