"""Remote content store clients.

This module provides:
- RemoteVersionInfo: Remote object version token and timestamps
- RemoteStoreError and subclasses: One exception per failure class
- RemoteStore: Capability protocol used by the sync engine
- HTTPRemoteStore: Production store speaking the HTTP object API

Business logic (scheduler, retry policy, conflict resolver) only depends
on RemoteStore and the exception classes, never on request shapes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import httpx

from artifactsync.client.auth import AccessToken, StaticTokenProvider, TokenProvider
from artifactsync.core.types import FailureClass

if TYPE_CHECKING:
    from artifactsync.core.chunking import UploadChunk
    from artifactsync.core.config import RemoteConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class RemoteStoreError(Exception):
    """Base exception for remote store failures."""

    failure_class = FailureClass.FATAL

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientNetworkError(RemoteStoreError):
    """Connection reset, DNS failure or deadline exceeded."""

    failure_class = FailureClass.TRANSIENT_NETWORK


class RateLimitedError(RemoteStoreError):
    """The store asked us to slow down."""

    failure_class = FailureClass.RATE_LIMITED

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class ServerError(RemoteStoreError):
    """5xx-class failure, or a range the store did not accept."""

    failure_class = FailureClass.SERVER_ERROR


class AuthExpiredError(RemoteStoreError):
    """Credentials were rejected or could not be obtained."""

    failure_class = FailureClass.AUTH_EXPIRED


class ConflictError(RemoteStoreError):
    """Remote object changed since the version we wrote against."""

    failure_class = FailureClass.CONFLICT


class FatalRemoteError(RemoteStoreError):
    """Payload rejected, permission denied or invalid path."""

    failure_class = FailureClass.FATAL


# =============================================================================
# Data types
# =============================================================================


@dataclass(frozen=True)
class RemoteVersionInfo:
    """Remote store's view of an object.

    Attributes:
        version: Opaque version token (ETag); changes on every modification.
        last_modified: Unix timestamp of the last modification.
        digest: SHA-256 of the object content, when the store reports it.
        size: Object size in bytes, when the store reports it.
    """

    version: str
    last_modified: float
    digest: str | None = None
    size: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteVersionInfo:
        """Create from API response dictionary."""
        return cls(
            version=str(data["version"]),
            last_modified=_parse_timestamp(data["last_modified"]),
            digest=data.get("sha256"),
            size=data.get("size"),
        )


def _parse_timestamp(value: str | float | int) -> float:
    """Parse an ISO-8601 string, HTTP date or number into a Unix timestamp."""
    if isinstance(value, int | float):
        return float(value)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = parsedate_to_datetime(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class RemoteStore(Protocol):
    """Capabilities the sync engine needs from a remote content store.

    Every call either returns or raises a RemoteStoreError subclass that
    identifies its failure class.
    """

    def put_object(
        self, path: str, data: bytes, if_match: str | None = None
    ) -> RemoteVersionInfo:
        """Replace the whole object at path."""
        ...

    def open_chunk_session(
        self, path: str, total_length: int, if_match: str | None = None
    ) -> str:
        """Open a chunked upload session and return its handle."""
        ...

    def put_chunk(
        self, session: str, chunk: UploadChunk, data: bytes
    ) -> tuple[bool, RemoteVersionInfo | None]:
        """Upload one range. The final range returns the committed version."""
        ...

    def abandon_chunk_session(self, session: str) -> None:
        """Forget a session that will not be completed."""
        ...

    def get_metadata(self, path: str) -> RemoteVersionInfo | None:
        """Read the current version of path, or None if it does not exist."""
        ...

    def get_object(self, path: str) -> bytes:
        """Read the current content of path."""
        ...

    def invalidate_credentials(self) -> None:
        """Drop any cached credentials so the next call fetches fresh ones."""
        ...


# =============================================================================
# HTTP store
# =============================================================================


class HTTPRemoteStore:
    """HTTP client for the remote object API.

    Endpoints:
        GET  /api/objects/{path}/metadata  -> version JSON (404 = missing)
        GET  /api/objects/{path}           -> raw bytes
        PUT  /api/objects/{path}           -> version JSON
        POST /api/uploads                  -> {"session_id": ...}
        PUT  /api/uploads/{session_id}     -> 202 while more ranges are expected,
                                              200/201 with version JSON when done
    """

    def __init__(
        self,
        config: RemoteConfig,
        token_provider: TokenProvider | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the store client.

        Args:
            config: Store connection configuration.
            token_provider: Credential source (defaults to the configured token).
            transport: Optional httpx transport (for tests).
        """
        self._config = config
        self._token_provider = token_provider or StaticTokenProvider(config.token)
        self._token: AccessToken | None = None
        self._lock = threading.Lock()
        # session_id -> total payload length, for Content-Range
        self._session_lengths: dict[str, int] = {}
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPRemoteStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Credentials ===

    def _auth_headers(self) -> dict[str, str]:
        with self._lock:
            if self._token is None or self._token.is_expired():
                try:
                    self._token = self._token_provider.get_access_token()
                except Exception as e:
                    raise AuthExpiredError(f"Token provider failed: {e}") from e
            return {"Authorization": f"Bearer {self._token.token}"}

    def invalidate_credentials(self) -> None:
        """Forget the cached token."""
        with self._lock:
            self._token = None

    # === Transport ===

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map failures onto the failure taxonomy."""
        all_headers = self._auth_headers()
        if headers:
            all_headers.update(headers)
        try:
            response = self._client.request(method, url, headers=all_headers, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} {url} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e
        return response

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        status = response.status_code
        if status < 400:
            return response

        detail = _error_detail(response)
        if status == 401:
            raise AuthExpiredError("Invalid or expired token", status)
        if status in (409, 412):
            raise ConflictError(detail or "Remote object changed", status)
        if status == 429:
            raise RateLimitedError(
                detail or "Rate limited",
                status,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status >= 500:
            raise ServerError(detail or f"Server error {status}", status)
        raise FatalRemoteError(detail or f"Request rejected ({status})", status)

    @staticmethod
    def _object_url(path: str) -> str:
        return f"/api/objects/{quote(path.lstrip('/'))}"

    # === Object operations ===

    def get_metadata(self, path: str) -> RemoteVersionInfo | None:
        """Get object version info.

        Args:
            path: Remote object path.

        Returns:
            Version info, or None if the object does not exist.
        """
        response = self._request("GET", f"{self._object_url(path)}/metadata")
        if response.status_code == 404:
            return None
        self._handle_response(response)
        return RemoteVersionInfo.from_dict(response.json())

    def get_object(self, path: str) -> bytes:
        """Download object content.

        Raises:
            FatalRemoteError: If the object does not exist.
        """
        response = self._handle_response(self._request("GET", self._object_url(path)))
        return response.content

    def put_object(
        self, path: str, data: bytes, if_match: str | None = None
    ) -> RemoteVersionInfo:
        """Upload a whole object in one request.

        Args:
            path: Remote object path.
            data: Full object content.
            if_match: Version the write is conditional on (None = unconditional).

        Returns:
            Version info of the written object.

        Raises:
            ConflictError: If the remote version no longer matches if_match.
        """
        headers = {"Content-Type": "application/octet-stream"}
        if if_match is not None:
            headers["If-Match"] = if_match
        response = self._handle_response(
            self._request("PUT", self._object_url(path), content=data, headers=headers)
        )
        return RemoteVersionInfo.from_dict(response.json())

    # === Chunked sessions ===

    def open_chunk_session(
        self, path: str, total_length: int, if_match: str | None = None
    ) -> str:
        """Open an upload session for a large object.

        Returns:
            Session handle to pass to put_chunk().
        """
        body: dict[str, Any] = {"path": path, "size": total_length}
        if if_match is not None:
            body["if_match"] = if_match
        response = self._handle_response(
            self._request("POST", "/api/uploads", json=body)
        )
        session_id: str = response.json()["session_id"]
        with self._lock:
            self._session_lengths[session_id] = total_length
        return session_id

    def put_chunk(
        self, session: str, chunk: UploadChunk, data: bytes
    ) -> tuple[bool, RemoteVersionInfo | None]:
        """Upload one range of an open session.

        Returns:
            (accepted, version). Version is set once the final range commits.
        """
        with self._lock:
            total_length = self._session_lengths.get(session)
        if total_length is None:
            raise FatalRemoteError(f"Unknown upload session: {session}")
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Range": chunk.content_range(total_length),
        }
        response = self._request(
            "PUT", f"/api/uploads/{quote(session)}", content=data, headers=headers
        )
        if response.status_code == 416:
            logger.warning(
                "Store rejected range %d/%d of session %s", chunk.index, chunk.total, session
            )
            return False, None
        self._handle_response(response)
        if response.status_code == 202:
            return True, None
        with self._lock:
            self._session_lengths.pop(session, None)
        return True, RemoteVersionInfo.from_dict(response.json())

    def abandon_chunk_session(self, session: str) -> None:
        """Drop local bookkeeping for a session that will not be completed.

        The store expires incomplete sessions on its own.
        """
        with self._lock:
            self._session_lengths.pop(session, None)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail", ""))
    return ""


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (seconds or HTTP date)."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(when.timestamp() - datetime.now(timezone.utc).timestamp(), 0.0)
