"""Durable quota counters.

Every write here is a single SQL statement whose WHERE clause carries the
precondition, so the database (row lock on PostgreSQL, the write lock on
SQLite) serialises concurrent callers for the same identity. Nothing in
this module reads a counter and writes it back from Python.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.clock import start_of_day, start_of_iso_week
from goalverse.db.models import QuotaRecord

PREMIUM = "premium"
FREE = "free"


def _insert_for(db: AsyncSession) -> Any:  # noqa: ANN401
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    msg = f"Unsupported dialect for quota store: {dialect}"
    raise NotImplementedError(msg)


async def ensure_record(
    db: AsyncSession,
    identity_key: str,
    user_id: int | None,
    tier: str,
    now: datetime,
) -> None:
    """Create the record with empty windows if it does not exist yet."""
    insert = _insert_for(db)
    stmt = insert(QuotaRecord).values(
        identity_key=identity_key,
        user_id=user_id,
        daily_count=0,
        daily_window_start=start_of_day(now),
        weekly_count=0,
        weekly_window_start=start_of_iso_week(now),
        tier=tier,
        created_at=now,
        updated_at=now,
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["identity_key"]))


async def sync_tier(db: AsyncSession, identity_key: str, tier: str, now: datetime) -> None:
    """Mirror the billing tier onto the record. Never touches counters."""
    await db.execute(
        update(QuotaRecord)
        .where(QuotaRecord.identity_key == identity_key, QuotaRecord.tier != tier)
        .values(tier=tier, updated_at=now)
        .execution_options(synchronize_session=False)
    )


async def roll_windows(db: AsyncSession, identity_key: str, now: datetime) -> None:
    """Reset counters whose day or ISO week has elapsed.

    Idempotent: a second caller in the same window matches no rows.
    """
    day_start = start_of_day(now)
    week_start = start_of_iso_week(now)
    await db.execute(
        update(QuotaRecord)
        .where(QuotaRecord.identity_key == identity_key, QuotaRecord.daily_window_start < day_start)
        .values(daily_count=0, daily_window_start=day_start, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(QuotaRecord)
        .where(QuotaRecord.identity_key == identity_key, QuotaRecord.weekly_window_start < week_start)
        .values(weekly_count=0, weekly_window_start=week_start, updated_at=now)
        .execution_options(synchronize_session=False)
    )


async def try_increment(
    db: AsyncSession,
    identity_key: str,
    cost: int,
    daily_limit: int,
    weekly_limit: int,
    now: datetime,
) -> bool:
    """Compare-and-swap increment. Returns True when the slot was taken.

    Premium records always match; free records match only while both
    counters stay within their limits after the increment.
    """
    result = await db.execute(
        update(QuotaRecord)
        .where(
            QuotaRecord.identity_key == identity_key,
            or_(
                QuotaRecord.tier == PREMIUM,
                and_(
                    QuotaRecord.daily_count + cost <= daily_limit,
                    QuotaRecord.weekly_count + cost <= weekly_limit,
                ),
            ),
        )
        .values(
            daily_count=QuotaRecord.daily_count + cost,
            weekly_count=QuotaRecord.weekly_count + cost,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def load_record(db: AsyncSession, identity_key: str) -> QuotaRecord | None:
    """Read the current row, bypassing any stale copy in the identity map."""
    result = await db.execute(
        select(QuotaRecord)
        .where(QuotaRecord.identity_key == identity_key)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
