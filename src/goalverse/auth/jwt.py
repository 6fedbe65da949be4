"""Bearer token handling.

Sessions are issued by the magic-link sign-in flow elsewhere in the
product; this service only needs to verify them and, in tests and
tooling, mint them. ``sub`` carries the numeric user id.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from goalverse.config import get_settings


def create_access_token(user_id: int, email: str | None = None) -> str:
    """Create a short-lived access token for ``user_id``."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an access token.

    Raises:
        jwt.InvalidTokenError: bad signature, expired, wrong issuer or type.
    """
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
    if payload.get("type") != "access":
        msg = "Invalid token type: expected access"
        raise jwt.InvalidTokenError(msg)
    if not str(payload["sub"]).isdigit():
        msg = "Invalid token subject"
        raise jwt.InvalidTokenError(msg)
    return payload
