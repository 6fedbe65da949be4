"""Durable notification queue and dispatch log.

Status changes are compare-and-swap UPDATEs guarded by ``status =
'pending'``, so a row can only ever leave ``pending`` once. Dispatch is
additionally guarded by a claim lease: a sweep writes its own
``claim_token`` before calling the transport, and only the holder of that
token can finalize the row.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.db.models import NotificationLog, ScheduledNotification
from goalverse.notifications.constants import CANCELLED, FAILED, PENDING, SENT

ENGAGEMENT_KINDS = {"opened": NotificationLog.opened_at, "clicked": NotificationLog.clicked_at}


def _same_key(dedupe_key: str | None) -> Any:  # noqa: ANN401
    if dedupe_key is None:
        return ScheduledNotification.dedupe_key.is_(None)
    return ScheduledNotification.dedupe_key == dedupe_key


def _claim_free(now: datetime, lease: timedelta) -> Any:  # noqa: ANN401
    return or_(
        ScheduledNotification.claimed_at.is_(None),
        ScheduledNotification.claimed_at < now - lease,
    )


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


async def has_pending(db: AsyncSession, user_id: int, type_: str, dedupe_key: str | None) -> bool:
    result = await db.execute(
        select(ScheduledNotification.id)
        .where(
            ScheduledNotification.user_id == user_id,
            ScheduledNotification.type == type_,
            ScheduledNotification.status == PENDING,
            _same_key(dedupe_key),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def has_sent(
    db: AsyncSession,
    user_id: int,
    type_: str,
    dedupe_key: str | None,
    since: datetime | None = None,
) -> bool:
    """Whether a sent record with this key exists (created at or after ``since`` if given)."""
    query = select(ScheduledNotification.id).where(
        ScheduledNotification.user_id == user_id,
        ScheduledNotification.type == type_,
        ScheduledNotification.status == SENT,
        _same_key(dedupe_key),
    )
    if since is not None:
        query = query.where(ScheduledNotification.created_at >= since)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def insert(
    db: AsyncSession,
    *,
    user_id: int,
    type_: str,
    scheduled_for: datetime,
    payload: dict[str, Any],
    now: datetime,
    dedupe_key: str | None = None,
    recurring: bool = False,
    recurrence_pattern: str | None = None,
) -> ScheduledNotification:
    row = ScheduledNotification(
        user_id=user_id,
        type=type_,
        scheduled_for=scheduled_for,
        payload=payload,
        dedupe_key=dedupe_key,
        recurring=recurring,
        recurrence_pattern=recurrence_pattern if recurring else None,
        status=PENDING,
        created_at=now,
    )
    db.add(row)
    await db.flush()
    return row


async def due_ids(db: AsyncSession, now: datetime, limit: int, lease: timedelta) -> list[int]:
    """Ids of pending rows due at ``now`` and not under a live claim, oldest first."""
    result = await db.execute(
        select(ScheduledNotification.id)
        .where(
            ScheduledNotification.status == PENDING,
            ScheduledNotification.scheduled_for <= now,
            _claim_free(now, lease),
        )
        .order_by(ScheduledNotification.scheduled_for, ScheduledNotification.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def claim(
    db: AsyncSession,
    notification_id: int,
    token: str,
    now: datetime,
    lease: timedelta,
) -> bool:
    """Take the dispatch lease. False when another sweep holds it or the row left pending."""
    result = await db.execute(
        update(ScheduledNotification)
        .where(
            ScheduledNotification.id == notification_id,
            ScheduledNotification.status == PENDING,
            _claim_free(now, lease),
        )
        .values(claim_token=token, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def finalize(
    db: AsyncSession,
    notification_id: int,
    token: str,
    status: str,
    now: datetime,
    error_message: str | None = None,
    payload: dict[str, Any] | None = None,
) -> bool:
    """Move a claimed row to a terminal status. Only the claim holder can succeed.

    ``payload`` replaces the stored one when given, so a sent row keeps
    the figures that were actually rendered.
    """
    values: dict[str, Any] = {"status": status, "error_message": error_message}
    if status == SENT:
        values["sent_at"] = now
    if payload is not None:
        values["payload"] = payload
    result = await db.execute(
        update(ScheduledNotification)
        .where(
            ScheduledNotification.id == notification_id,
            ScheduledNotification.status == PENDING,
            ScheduledNotification.claim_token == token,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def get(db: AsyncSession, notification_id: int) -> ScheduledNotification | None:
    return await db.get(ScheduledNotification, notification_id, populate_existing=True)


async def cancel_pending(
    db: AsyncSession,
    user_id: int,
    now: datetime,
    lease: timedelta,
    type_: str | None = None,
) -> list[tuple[int, str]]:
    """Cancel unclaimed pending rows for a user. Returns (id, type) of each cancelled row."""
    query = select(ScheduledNotification.id, ScheduledNotification.type).where(
        ScheduledNotification.user_id == user_id,
        ScheduledNotification.status == PENDING,
        _claim_free(now, lease),
    )
    if type_ is not None:
        query = query.where(ScheduledNotification.type == type_)
    rows = (await db.execute(query)).all()
    cancelled = []
    for notification_id, row_type in rows:
        result = await db.execute(
            update(ScheduledNotification)
            .where(
                ScheduledNotification.id == notification_id,
                ScheduledNotification.status == PENDING,
                _claim_free(now, lease),
            )
            .values(status=CANCELLED, error_message="Cancelled by request")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            cancelled.append((notification_id, row_type))
    return cancelled


async def list_pending(db: AsyncSession, user_id: int) -> list[ScheduledNotification]:
    result = await db.execute(
        select(ScheduledNotification)
        .where(ScheduledNotification.user_id == user_id, ScheduledNotification.status == PENDING)
        .order_by(ScheduledNotification.scheduled_for)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Log
# ---------------------------------------------------------------------------


async def append_log(
    db: AsyncSession,
    *,
    user_id: int,
    type_: str,
    outcome: str,
    now: datetime,
    notification_id: int | None = None,
    recipient: str | None = None,
    detail: str | None = None,
) -> NotificationLog:
    entry = NotificationLog(
        user_id=user_id,
        notification_id=notification_id,
        type=type_,
        recipient=recipient,
        outcome=outcome,
        detail=detail,
        created_at=now,
    )
    db.add(entry)
    await db.flush()
    return entry


async def history(db: AsyncSession, user_id: int, limit: int = 10) -> list[NotificationLog]:
    result = await db.execute(
        select(NotificationLog)
        .where(NotificationLog.user_id == user_id)
        .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def record_engagement(
    db: AsyncSession,
    log_id: int,
    user_id: int,
    kind: str,
    now: datetime,
) -> NotificationLog | None:
    """Stamp ``opened_at`` or ``clicked_at`` once. None if the log row is not the user's."""
    column = ENGAGEMENT_KINDS[kind]
    await db.execute(
        update(NotificationLog)
        .where(NotificationLog.id == log_id, NotificationLog.user_id == user_id, column.is_(None))
        .values({column.key: now})
        .execution_options(synchronize_session=False)
    )
    entry = await db.get(NotificationLog, log_id, populate_existing=True)
    if entry is None or entry.user_id != user_id:
        return None
    return entry


async def engagement_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Open and click rates over sent notifications. Click rate is clicks per open."""
    result = await db.execute(
        select(
            NotificationLog.type,
            func.count(NotificationLog.id),
            func.count(NotificationLog.opened_at),
            func.count(NotificationLog.clicked_at),
        )
        .where(NotificationLog.user_id == user_id, NotificationLog.outcome == SENT)
        .group_by(NotificationLog.type)
        .order_by(NotificationLog.type)
    )
    total = opened = clicked = 0
    best_type, best_rate = None, 0.0
    for type_, sent_count, opened_count, clicked_count in result.all():
        total += sent_count
        opened += opened_count
        clicked += clicked_count
        rate = (opened_count + clicked_count) / sent_count
        if rate > best_rate:
            best_type, best_rate = type_, rate

    return {
        "total_sent": total,
        "opened": opened,
        "clicked": clicked,
        "open_rate": round(opened / total * 100) if total else 0,
        "click_rate": round(clicked / opened * 100) if opened else 0,
        "most_engaging_type": best_type,
    }


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------


async def delete_finished_before(db: AsyncSession, cutoff: datetime) -> int:
    """Delete sent rows sent before ``cutoff`` and failed rows created before it."""
    result = await db.execute(
        delete(ScheduledNotification)
        .where(
            or_(
                (ScheduledNotification.status == SENT) & (ScheduledNotification.sent_at < cutoff),
                (ScheduledNotification.status == FAILED) & (ScheduledNotification.created_at < cutoff),
            )
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def delete_logs_before(db: AsyncSession, cutoff: datetime) -> int:
    result = await db.execute(
        delete(NotificationLog)
        .where(NotificationLog.created_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
