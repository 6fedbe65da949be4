"""Read-only snapshot source backed by the product tables."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.db.models import Goal, User, UserActivity
from goalverse.errors import UserNotFound
from goalverse.notifications.analyzer import GoalSnapshot, UserSnapshot
from goalverse.notifications.preferences import get_preferences
from goalverse.quota.service import normalize_tier

SnapshotProvider = Callable[[AsyncSession, int], Awaitable[UserSnapshot]]


async def load_snapshot(db: AsyncSession, user_id: int) -> UserSnapshot:
    """Build a ``UserSnapshot`` from users, goals and user_activity."""
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise UserNotFound(user_id)

    activity = await db.get(UserActivity, user_id, populate_existing=True)
    goals = (
        await db.execute(select(Goal).where(Goal.user_id == user_id).order_by(Goal.id))
    ).scalars().all()

    return UserSnapshot(
        user_id=user_id,
        tier=normalize_tier(user.tier),
        current_streak=activity.current_streak if activity else 0,
        last_activity_at=activity.last_activity_at if activity else None,
        goals=tuple(
            GoalSnapshot(
                id=g.id,
                title=g.title,
                status=g.status,
                created_at=g.created_at,
                category=g.category,
                completed_at=g.completed_at,
            )
            for g in goals
        ),
        preferences=await get_preferences(db, user_id),
    )


async def user_email(db: AsyncSession, user_id: int) -> str | None:
    result = await db.execute(select(User.email).where(User.id == user_id))
    return result.scalar_one_or_none()


async def user_ids_after(db: AsyncSession, after_id: int, limit: int) -> list[int]:
    """Keyset page of user ids for batch reconciliation."""
    result = await db.execute(
        select(User.id).where(User.id > after_id).order_by(User.id).limit(limit)
    )
    return list(result.scalars().all())
