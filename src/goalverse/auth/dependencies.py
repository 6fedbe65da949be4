"""FastAPI authentication dependencies."""

from __future__ import annotations

import hmac

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.config import get_settings
from goalverse.database import get_session
from goalverse.db.models import User
from goalverse.identity import AuthenticatedIdentity, Identity, resolve_identity


async def get_identity(request: Request) -> Identity:
    """Authenticated identity from the bearer token, else the anonymous IP bucket."""
    try:
        return resolve_identity(request, get_settings())
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


async def get_current_user(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Require an authenticated identity that maps to an existing user."""
    if not isinstance(identity, AuthenticatedIdentity):
        raise HTTPException(status_code=401, detail="Authentication required")
    user = await db.get(User, identity.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_cron_secret(x_cron_secret: str | None = Header(default=None)) -> None:
    """Guard operator endpoints (cron triggers, manual sweeps)."""
    expected = get_settings().cron_secret
    if not expected:
        raise HTTPException(status_code=403, detail="Operator endpoints are disabled")
    if x_cron_secret is None or not hmac.compare_digest(x_cron_secret, expected):
        raise HTTPException(status_code=403, detail="Invalid cron secret")
