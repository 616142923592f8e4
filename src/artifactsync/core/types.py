"""Shared types for artifactsync.

This module defines enums used by both the remote store clients and the
sync engine.
"""

from __future__ import annotations

from enum import Enum


class FailureClass(str, Enum):
    """Classification of a failed remote call.

    Used by the remote store clients (which raise one exception per class)
    and by the retry policy (which decides what to do with each class).
    """

    TRANSIENT_NETWORK = "transient-network"
    RATE_LIMITED = "rate-limited"
    SERVER_ERROR = "server-error"
    AUTH_EXPIRED = "auth-expired"
    CONFLICT = "conflict"
    FATAL = "fatal"


class ContentKind(str, Enum):
    """How a target's content evolves between syncs."""

    WHOLE_REPLACE = "whole-replace"
    APPEND_GROWING = "append-growing"
