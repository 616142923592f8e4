"""Access token acquisition for the remote store.

Credential acquisition and refresh live outside the engine. The engine
only sees this narrow contract:

    provider.get_access_token() -> AccessToken(token, expires_at)

Any failure raised by a provider is classified as ``auth-expired``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and its expiry.

    Attributes:
        token: Opaque bearer token.
        expires_at: Unix timestamp after which the token is stale (None = never).
    """

    token: str
    expires_at: float | None = None

    def is_expired(self, now: float | None = None, leeway: float = 30.0) -> bool:
        """Check if the token is expired or about to expire.

        Args:
            now: Current time (defaults to time.time()).
            leeway: Seconds before expiry at which the token counts as stale.
        """
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at - leeway


class TokenProvider(Protocol):
    """Protocol for credential providers."""

    def get_access_token(self) -> AccessToken:
        """Return a valid access token, refreshing it if needed."""
        ...


class StaticTokenProvider:
    """Token provider for a fixed, non-expiring token from configuration."""

    def __init__(self, token: str) -> None:
        self._token = AccessToken(token=token)

    def get_access_token(self) -> AccessToken:
        """Return the configured token."""
        return self._token
