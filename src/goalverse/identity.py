"""Identity resolution: who a quota is counted against.

An authenticated request is counted against its user id. Anything else
is counted against an anonymous bucket made of a salted hash of the
client IP and the current UTC day. The two are never merged: signing in
starts a fresh authenticated counter.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from starlette.requests import Request

from goalverse.auth.jwt import verify_token
from goalverse.clock import day_key, utcnow
from goalverse.config import Settings


@dataclass(frozen=True)
class AuthenticatedIdentity:
    user_id: int

    kind: ClassVar[str] = "authenticated"

    @property
    def key(self) -> str:
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class AnonymousIdentity:
    ip_hash: str
    day: str

    kind: ClassVar[str] = "anonymous"

    @property
    def key(self) -> str:
        return f"anon:{self.ip_hash}:{self.day}"


Identity = AuthenticatedIdentity | AnonymousIdentity


def hash_ip(ip: str, salt: str) -> str:
    """Salted SHA-256 of a client address. Raw addresses are never stored."""
    return hashlib.sha256(f"{salt}:{ip}".encode()).hexdigest()[:32]


def client_ip(request: Request, trust_forwarded_for: bool = True) -> str:
    """First hop of X-Forwarded-For when trusted, else the socket peer."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def anonymous_identity(ip: str, salt: str, now: datetime | None = None) -> AnonymousIdentity:
    return AnonymousIdentity(ip_hash=hash_ip(ip, salt), day=day_key(now or utcnow()))


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_identity(request: Request, settings: Settings, now: datetime | None = None) -> Identity:
    """
    Map a request to an identity.

    A present but invalid bearer token is an error (``jwt.InvalidTokenError``),
    not a silent downgrade to the anonymous bucket.
    """
    token = bearer_token(request)
    if token is not None:
        payload = verify_token(token)
        return AuthenticatedIdentity(user_id=int(payload["sub"]))
    ip = client_ip(request, settings.trust_forwarded_for)
    return anonymous_identity(ip, settings.ip_hash_salt, now)
