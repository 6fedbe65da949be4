"""Identity resolution tests: bearer tokens, anonymous buckets, IP hashing."""

from __future__ import annotations

from datetime import datetime, timezone

import jwt
import pytest
from starlette.requests import Request

from goalverse.auth.jwt import create_access_token
from goalverse.config import get_settings
from goalverse.identity import (
    AnonymousIdentity,
    AuthenticatedIdentity,
    anonymous_identity,
    bearer_token,
    client_ip,
    hash_ip,
    resolve_identity,
)

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


def make_request(headers: dict[str, str] | None = None, peer: str = "10.0.0.9") -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": raw,
        "client": (peer, 5555),
    })


class TestHashIp:
    """Salted IP hashing."""

    def test_deterministic(self):
        assert hash_ip("203.0.113.7", "salt") == hash_ip("203.0.113.7", "salt")

    def test_salt_changes_hash(self):
        assert hash_ip("203.0.113.7", "a") != hash_ip("203.0.113.7", "b")

    def test_raw_address_not_in_hash(self):
        assert "203.0.113.7" not in hash_ip("203.0.113.7", "salt")


class TestClientIp:
    def test_forwarded_for_first_hop(self):
        request = make_request({"X-Forwarded-For": "198.51.100.4, 10.0.0.1"})
        assert client_ip(request) == "198.51.100.4"

    def test_forwarded_for_ignored_when_untrusted(self):
        request = make_request({"X-Forwarded-For": "198.51.100.4"})
        assert client_ip(request, trust_forwarded_for=False) == "10.0.0.9"

    def test_falls_back_to_peer(self):
        assert client_ip(make_request()) == "10.0.0.9"


class TestBearerToken:
    def test_extracts_token(self):
        assert bearer_token(make_request({"Authorization": "Bearer abc.def"})) == "abc.def"

    def test_other_scheme_ignored(self):
        assert bearer_token(make_request({"Authorization": "Basic Zm9vOmJhcg=="})) is None

    def test_missing_header(self):
        assert bearer_token(make_request()) is None


class TestResolveIdentity:
    """Request to identity mapping."""

    def test_valid_token_is_authenticated(self):
        request = make_request({"Authorization": f"Bearer {create_access_token(42)}"})
        identity = resolve_identity(request, get_settings(), NOW)
        assert identity == AuthenticatedIdentity(user_id=42)
        assert identity.key == "user:42"

    def test_no_token_is_anonymous(self):
        identity = resolve_identity(make_request(), get_settings(), NOW)
        assert isinstance(identity, AnonymousIdentity)
        assert identity.day == "2026-03-04"
        assert identity.key.startswith("anon:")
        assert identity.key.endswith(":2026-03-04")

    def test_invalid_token_raises(self):
        """A bad token is an error, never a downgrade to the anonymous bucket."""
        request = make_request({"Authorization": "Bearer not-a-jwt"})
        with pytest.raises(jwt.InvalidTokenError):
            resolve_identity(request, get_settings(), NOW)

    def test_anonymous_bucket_changes_daily(self):
        settings = get_settings()
        today = anonymous_identity("10.0.0.9", settings.ip_hash_salt, NOW)
        tomorrow = anonymous_identity(
            "10.0.0.9", settings.ip_hash_salt, datetime(2026, 3, 5, 0, 0, tzinfo=timezone.utc),
        )
        assert today.ip_hash == tomorrow.ip_hash
        assert today.key != tomorrow.key

    def test_authenticated_and_anonymous_never_share_a_key(self):
        settings = get_settings()
        auth = resolve_identity(
            make_request({"Authorization": f"Bearer {create_access_token(7)}"}), settings, NOW,
        )
        anon = resolve_identity(make_request(), settings, NOW)
        assert auth.key != anon.key
