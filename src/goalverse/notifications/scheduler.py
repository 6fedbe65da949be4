"""Notification scheduler: reconcile intents into the queue and dispatch due rows.

``reconcile`` is safe to run any number of times: an intent is only
inserted when no pending row (and, for once-per-key types, no recent sent
row) carries the same ``(user_id, type, dedupe_key)``.

``sweep`` dispatches each due row at most once even when sweeps overlap:
the row is claimed by compare-and-swap before the transport is called,
and only the claim holder can move it to a terminal status. Every row is
committed on its own, so a failing send never affects the rest of the
batch.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.clock import utcnow
from goalverse.config import Settings, get_settings
from goalverse.database import store_errors
from goalverse.db.models import ScheduledNotification, User
from goalverse.email.templates import render
from goalverse.email.transport import BaseEmailProvider
from goalverse.errors import InvalidNotification, UserNotFound
from goalverse.notifications import store
from goalverse.notifications.analyzer import REFRESHED_TYPES, analyze, refresh_payload
from goalverse.notifications.constants import (
    CANCELLED,
    DAILY,
    FAILED,
    MONTHLY,
    NOTIFICATION_TYPES,
    ONCE_PER_KEY_TYPES,
    RECURRENCE_PATTERNS,
    SENT,
    STREAK_CELEBRATION,
    WEEKLY,
)
from goalverse.notifications.preferences import get_preferences, should_deliver
from goalverse.notifications.snapshot import SnapshotProvider, load_snapshot, user_email

logger = logging.getLogger(__name__)

_FIXED_STEPS = {DAILY: timedelta(days=1), WEEKLY: timedelta(weeks=1)}


@dataclass(frozen=True)
class ReconcileResult:
    scheduled_count: int
    skipped: int


@dataclass
class SweepResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    notification_ids: list[int] = field(default_factory=list, repr=False)

    def as_dict(self) -> dict[str, int]:
        data = asdict(self)
        data.pop("notification_ids")
        return data


@dataclass(frozen=True)
class CleanupResult:
    notifications: int
    logs: int


def next_occurrence(scheduled_for: datetime, pattern: str, now: datetime) -> datetime:
    """First occurrence after ``now``, stepping whole intervals from ``scheduled_for``.

    Monthly steps are taken from the original anchor, so a series that
    starts on the 31st lands on the last day of shorter months and returns
    to the 31st afterwards.
    """
    if pattern in _FIXED_STEPS:
        step = _FIXED_STEPS[pattern]
        steps = 1 if now < scheduled_for else (now - scheduled_for) // step + 1
        return scheduled_for + steps * step
    if pattern == MONTHLY:
        months = 1
        candidate = scheduled_for + relativedelta(months=months)
        while candidate <= now:
            months += 1
            candidate = scheduled_for + relativedelta(months=months)
        return candidate
    msg = f"Unknown recurrence pattern: {pattern}"
    raise InvalidNotification(msg)


async def _is_blocked(
    db: AsyncSession,
    user_id: int,
    type_: str,
    dedupe_key: str | None,
    payload: dict[str, Any],
    now: datetime,
) -> bool:
    if await store.has_pending(db, user_id, type_, dedupe_key):
        return True
    if type_ not in ONCE_PER_KEY_TYPES or dedupe_key is None:
        return False
    since = None
    if type_ == STREAK_CELEBRATION:
        # the same milestone can only recur after the streak was broken and rebuilt
        since = now - timedelta(days=int(payload.get("current_streak") or 0))
    return await store.has_sent(db, user_id, type_, dedupe_key, since=since)


async def _insert_unless_blocked(
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
) -> ScheduledNotification | None:
    """Insert and commit one row. None when an equivalent row already exists."""
    if await _is_blocked(db, user_id, type_, dedupe_key, payload, now):
        return None
    try:
        row = await store.insert(
            db,
            user_id=user_id,
            type_=type_,
            scheduled_for=scheduled_for,
            payload=payload,
            now=now,
            dedupe_key=dedupe_key,
            recurring=recurring,
            recurrence_pattern=recurrence_pattern,
        )
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent reconcile for the same key
        await db.rollback()
        return None
    return row


async def reconcile(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
    provider: SnapshotProvider | None = None,
) -> ReconcileResult:
    """Analyze one user and queue every intent that is not already queued.

    Raises:
        UserNotFound: If the user does not exist.
    """
    now = now or utcnow()
    provider = provider or load_snapshot
    scheduled = skipped = 0

    try:
        with store_errors("notification reconcile"):
            snapshot = await provider(db, user_id)
            for intent in analyze(snapshot, now):
                row = await _insert_unless_blocked(
                    db,
                    user_id=intent.user_id,
                    type_=intent.type,
                    scheduled_for=intent.scheduled_for,
                    payload=intent.payload,
                    now=now,
                    dedupe_key=intent.dedupe_key,
                    recurring=intent.recurring,
                    recurrence_pattern=intent.recurrence_pattern,
                )
                if row is None:
                    skipped += 1
                else:
                    scheduled += 1
    except Exception:
        await db.rollback()
        raise

    if scheduled:
        logger.info("Reconciled user %d: %d scheduled, %d skipped", user_id, scheduled, skipped)
    return ReconcileResult(scheduled_count=scheduled, skipped=skipped)


async def _deliver(
    db: AsyncSession,
    row: ScheduledNotification,
    transport: BaseEmailProvider,
    now: datetime,
    settings: Settings,
) -> tuple[str | None, dict[str, Any] | None, str | None]:
    """Render and send one row.

    Returns (recipient, rendered payload, error); error None means sent.
    """
    recipient = await user_email(db, row.user_id)
    if not recipient:
        return None, None, "User email not found"

    payload = dict(row.payload or {})
    if row.type in REFRESHED_TYPES:
        payload = refresh_payload(row.type, payload, await load_snapshot(db, row.user_id), now)

    try:
        subject, html_body, text_body = render(row.type, recipient, payload, settings.frontend_base_url)
    except Exception as e:  # noqa: BLE001
        return recipient, payload, f"Render failed: {type(e).__name__}: {e}"

    timeout = settings.dispatch_timeout_seconds
    try:
        delivered = await asyncio.wait_for(
            transport.send(recipient, subject, html_body, text_body), timeout=timeout,
        )
    except TimeoutError:
        return recipient, payload, f"Dispatch timed out after {timeout:g}s"
    except Exception as e:  # noqa: BLE001
        return recipient, payload, f"{type(e).__name__}: {e}"
    if not delivered:
        return recipient, payload, "Transport reported failure"
    return recipient, payload, None


async def _outcome(
    db: AsyncSession,
    row: ScheduledNotification,
    transport: BaseEmailProvider,
    now: datetime,
    settings: Settings,
) -> tuple[str, str | None, dict[str, Any] | None, str | None]:
    """(status, recipient, rendered payload, error) for a claimed row."""
    preferences = await get_preferences(db, row.user_id)
    if not should_deliver(preferences, row.type):
        return CANCELLED, None, None, "Suppressed by user preferences"
    recipient, payload, error = await _deliver(db, row, transport, now, settings)
    return (SENT if error is None else FAILED), recipient, payload, error


async def _dispatch_one(
    db: AsyncSession,
    notification_id: int,
    transport: BaseEmailProvider,
    now: datetime,
    settings: Settings,
) -> str | None:
    """Claim, send and finalize one row. Returns the final status, None if the row was lost.

    Once the row is claimed any error short of a store outage finalizes it
    as failed, so a bad row can neither stall in ``pending`` nor stop the
    rest of the batch.
    """
    lease = timedelta(seconds=settings.dispatch_claim_lease_seconds)
    token = str(uuid.uuid4())

    claimed = await store.claim(db, notification_id, token, now, lease)
    await db.commit()
    if not claimed:
        return None

    row = await store.get(db, notification_id)
    if row is None:
        return None
    # rollback expires the instance, so keep what finalizing and recurrence need
    user_id, type_ = row.user_id, row.type
    scheduled_for, dedupe_key = row.scheduled_for, row.dedupe_key
    recurrence_pattern = row.recurrence_pattern if row.recurring else None

    try:
        status, recipient, payload, error = await _outcome(db, row, transport, now, settings)
    except (OperationalError, InterfaceError):
        raise
    except Exception as e:  # noqa: BLE001
        await db.rollback()
        logger.exception("Unexpected error dispatching notification %d", notification_id)
        status, recipient, payload, error = FAILED, None, None, f"{type(e).__name__}: {e}"

    if not await store.finalize(db, notification_id, token, status, now, error, payload=payload):
        # claim expired and another sweep took over while we were sending
        await db.rollback()
        logger.warning("Lost claim on notification %d before finalizing", notification_id)
        return None

    await store.append_log(
        db,
        user_id=user_id,
        notification_id=notification_id,
        type_=type_,
        outcome=status,
        recipient=recipient,
        detail=error,
        now=now,
    )
    if status == FAILED:
        logger.warning("Dispatch failed for notification %d (%s): %s", notification_id, type_, error)

    await db.commit()

    if status == SENT and recurrence_pattern:
        await _insert_unless_blocked(
            db,
            user_id=user_id,
            type_=type_,
            scheduled_for=next_occurrence(scheduled_for, recurrence_pattern, now),
            payload=payload or {},
            now=now,
            dedupe_key=dedupe_key,
            recurring=True,
            recurrence_pattern=recurrence_pattern,
        )
    return status


async def sweep(
    db: AsyncSession,
    transport: BaseEmailProvider,
    now: datetime | None = None,
    limit: int | None = None,
    settings: Settings | None = None,
) -> SweepResult:
    """Dispatch every pending notification due at ``now``, oldest first."""
    now = now or utcnow()
    settings = settings or get_settings()
    limit = limit or settings.sweep_batch_size
    lease = timedelta(seconds=settings.dispatch_claim_lease_seconds)
    result = SweepResult()

    try:
        with store_errors("notification sweep"):
            ids = await store.due_ids(db, now, limit, lease)
            await db.commit()
            for notification_id in ids:
                status = await _dispatch_one(db, notification_id, transport, now, settings)
                if status is None:
                    continue
                result.processed += 1
                result.notification_ids.append(notification_id)
                if status == SENT:
                    result.sent += 1
                elif status == FAILED:
                    result.failed += 1
                else:
                    result.cancelled += 1
    except Exception:
        await db.rollback()
        raise

    if result.processed:
        logger.info("Sweep processed %d notifications: %d sent, %d failed, %d cancelled",
                    result.processed, result.sent, result.failed, result.cancelled)
    return result


async def schedule_custom(
    db: AsyncSession,
    user_id: int,
    type_: str,
    scheduled_for: datetime,
    payload: dict[str, Any] | None = None,
    recurring: bool = False,
    recurrence_pattern: str | None = None,
    dedupe_key: str | None = None,
    now: datetime | None = None,
) -> ScheduledNotification | None:
    """Queue a notification directly. Returns None when an equivalent one is already queued.

    Raises:
        InvalidNotification: On unknown type or pattern, or a naive timestamp.
        UserNotFound: If the user does not exist.
    """
    if type_ not in NOTIFICATION_TYPES:
        msg = f"Unknown notification type: {type_}"
        raise InvalidNotification(msg)
    if recurring and recurrence_pattern not in RECURRENCE_PATTERNS:
        msg = f"Recurring notifications need a pattern in {sorted(RECURRENCE_PATTERNS)}"
        raise InvalidNotification(msg)
    if not recurring and recurrence_pattern is not None:
        msg = "recurrence_pattern given for a one-shot notification"
        raise InvalidNotification(msg)
    if scheduled_for.tzinfo is None:
        msg = "scheduled_for must be timezone-aware"
        raise InvalidNotification(msg)

    now = now or utcnow()
    try:
        with store_errors("notification schedule"):
            if await db.get(User, user_id) is None:
                raise UserNotFound(user_id)
            row = await _insert_unless_blocked(
                db,
                user_id=user_id,
                type_=type_,
                scheduled_for=scheduled_for,
                payload=payload or {},
                now=now,
                dedupe_key=dedupe_key,
                recurring=recurring,
                recurrence_pattern=recurrence_pattern,
            )
    except Exception:
        await db.rollback()
        raise
    if row is not None:
        logger.info("Scheduled %s notification %d for user %d", type_, row.id, user_id)
    return row


async def cancel_pending(
    db: AsyncSession,
    user_id: int,
    type_: str | None = None,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> int:
    """Cancel a user's pending notifications (optionally one type). Rows mid-dispatch are left alone."""
    if type_ is not None and type_ not in NOTIFICATION_TYPES:
        msg = f"Unknown notification type: {type_}"
        raise InvalidNotification(msg)
    now = now or utcnow()
    settings = settings or get_settings()
    lease = timedelta(seconds=settings.dispatch_claim_lease_seconds)

    try:
        with store_errors("notification cancel"):
            cancelled = await store.cancel_pending(db, user_id, now, lease, type_)
            for notification_id, cancelled_type in cancelled:
                await store.append_log(
                    db,
                    user_id=user_id,
                    notification_id=notification_id,
                    type_=cancelled_type,
                    outcome=CANCELLED,
                    detail="Cancelled by request",
                    now=now,
                )
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    if cancelled:
        logger.info("Cancelled %d pending notifications for user %d", len(cancelled), user_id)
    return len(cancelled)


async def cleanup(
    db: AsyncSession,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> CleanupResult:
    """Delete finished notifications and old log rows past their retention."""
    now = now or utcnow()
    settings = settings or get_settings()
    try:
        with store_errors("notification cleanup"):
            notifications = await store.delete_finished_before(
                db, now - timedelta(days=settings.notification_retention_days),
            )
            logs = await store.delete_logs_before(db, now - timedelta(days=settings.log_retention_days))
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Notification cleanup removed %d notifications and %d log rows", notifications, logs)
    return CleanupResult(notifications=notifications, logs=logs)
