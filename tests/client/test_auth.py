"""Tests for access tokens."""

from __future__ import annotations

from artifactsync.client.auth import AccessToken, StaticTokenProvider


class TestAccessToken:
    """Tests for AccessToken expiry."""

    def test_no_expiry(self) -> None:
        """Tokens without an expiry never expire."""
        assert not AccessToken(token="t").is_expired(now=1e12)

    def test_leeway(self) -> None:
        """Tokens count as expired inside the leeway window."""
        token = AccessToken(token="t", expires_at=1000.0)
        assert not token.is_expired(now=900.0)
        assert token.is_expired(now=975.0)
        assert not token.is_expired(now=975.0, leeway=0.0)
        assert token.is_expired(now=1000.0, leeway=0.0)


class TestStaticTokenProvider:
    """Tests for StaticTokenProvider."""

    def test_returns_configured_token(self) -> None:
        """The configured token is returned and never expires."""
        token = StaticTokenProvider("secret").get_access_token()
        assert token.token == "secret"
        assert token.expires_at is None
