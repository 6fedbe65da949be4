"""Notification history, upcoming queue and engagement tracking."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.clock import utcnow
from goalverse.database import store_errors
from goalverse.db.models import NotificationLog, ScheduledNotification
from goalverse.notifications import store


async def get_history(db: AsyncSession, user_id: int, limit: int = 10) -> list[NotificationLog]:
    with store_errors("notification history"):
        return await store.history(db, user_id, limit)


async def list_pending(db: AsyncSession, user_id: int) -> list[ScheduledNotification]:
    with store_errors("notification queue"):
        return await store.list_pending(db, user_id)


async def record_engagement(
    db: AsyncSession,
    log_id: int,
    user_id: int,
    kind: str,
    now: datetime | None = None,
) -> NotificationLog | None:
    """Stamp an open or click on one of the user's log rows. The first stamp wins."""
    if kind not in store.ENGAGEMENT_KINDS:
        msg = f"Unknown engagement kind: {kind}"
        raise ValueError(msg)
    with store_errors("notification engagement"):
        entry = await store.record_engagement(db, log_id, user_id, kind, now or utcnow())
        await db.commit()
    return entry


async def get_engagement_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    with store_errors("notification stats"):
        return await store.engagement_stats(db, user_id)
