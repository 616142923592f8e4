"""Core module - Shared chunk planning and configuration."""

from artifactsync.core.chunking import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_UPLOAD_THRESHOLD,
    UploadChunk,
    get_content_digest,
    plan_chunks,
)
from artifactsync.core.config import EngineConfig, RemoteConfig
from artifactsync.core.types import ContentKind, FailureClass

__all__ = [
    # Chunking
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_UPLOAD_THRESHOLD",
    "UploadChunk",
    "get_content_digest",
    "plan_chunks",
    # Config
    "EngineConfig",
    "RemoteConfig",
    # Types
    "ContentKind",
    "FailureClass",
]
