"""Quota guard: decide whether an identity may start a new coaching session.

``try_consume`` runs insert-if-missing, window roll and the conditional
increment inside one transaction. The conditional increment is the only
statement that can grant a slot, so two concurrent requests can never
both take the last one. A denial is a normal return value, never an
exception; store faults surface as ``StoreUnavailable``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.clock import start_of_day, start_of_iso_week, utcnow
from goalverse.config import Settings, get_settings
from goalverse.database import store_errors
from goalverse.db.models import User
from goalverse.errors import UserNotFound
from goalverse.identity import AuthenticatedIdentity, Identity
from goalverse.quota import store
from goalverse.quota.store import FREE, PREMIUM

logger = logging.getLogger(__name__)

DAILY_LIMIT = "daily_limit"
WEEKLY_LIMIT = "weekly_limit"


@dataclass(frozen=True)
class QuotaView:
    daily_count: int
    daily_limit: int
    weekly_count: int
    weekly_limit: int
    tier: str

    @property
    def remaining(self) -> int | None:
        """Slots left before a denial; None for premium (unlimited)."""
        if self.tier == PREMIUM:
            return None
        return max(0, min(self.daily_limit - self.daily_count, self.weekly_limit - self.weekly_count))

    def as_dict(self) -> dict[str, object]:
        data: dict[str, object] = asdict(self)
        data["remaining"] = self.remaining
        return data


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    view: QuotaView
    reason: str | None = None


def normalize_tier(raw: str | None) -> str:
    return PREMIUM if raw == PREMIUM else FREE


async def billing_tier(db: AsyncSession, identity: Identity) -> str:
    """Current tier from the billing source of truth. Anonymous identities are free."""
    if not isinstance(identity, AuthenticatedIdentity):
        return FREE
    user = await db.get(User, identity.user_id, populate_existing=True)
    return normalize_tier(user.tier if user else None)


def _user_id(identity: Identity) -> int | None:
    return identity.user_id if isinstance(identity, AuthenticatedIdentity) else None


def denial_reason(view: QuotaView, cost: int) -> str:
    """The weekly window is checked first: with both exhausted, weekly is reported."""
    if view.weekly_count + cost > view.weekly_limit:
        return WEEKLY_LIMIT
    return DAILY_LIMIT


async def try_consume(
    db: AsyncSession,
    identity: Identity,
    cost: int = 1,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> QuotaDecision:
    """Atomically check and take ``cost`` slots for ``identity``."""
    if cost < 1:
        msg = f"cost must be >= 1, got {cost}"
        raise ValueError(msg)
    now = now or utcnow()
    settings = settings or get_settings()
    key = identity.key

    try:
        with store_errors("quota consume"):
            tier = await billing_tier(db, identity)
            await store.ensure_record(db, key, _user_id(identity), tier, now)
            await store.sync_tier(db, key, tier, now)
            await store.roll_windows(db, key, now)
            allowed = await store.try_increment(
                db, key, cost, settings.daily_limit, settings.weekly_limit, now,
            )
            record = await store.load_record(db, key)
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    if record is None:
        msg = f"quota record vanished for {identity.kind} identity"
        raise RuntimeError(msg)

    view = QuotaView(
        daily_count=record.daily_count,
        daily_limit=settings.daily_limit,
        weekly_count=record.weekly_count,
        weekly_limit=settings.weekly_limit,
        tier=record.tier,
    )
    if allowed:
        return QuotaDecision(allowed=True, view=view)

    reason = denial_reason(view, cost)
    logger.info("Quota denied for %s identity: %s (%d/%d daily, %d/%d weekly)",
                identity.kind, reason, view.daily_count, view.daily_limit,
                view.weekly_count, view.weekly_limit)
    return QuotaDecision(allowed=False, view=view, reason=reason)


async def sync_tier(db: AsyncSession, user_id: int, now: datetime | None = None) -> str:
    """Re-read ``users.tier`` and mirror it onto the user's quota record.

    Called after a billing change so the next check sees the new tier even
    before the user's next consume. Counters are left alone.
    """
    now = now or utcnow()
    identity = AuthenticatedIdentity(user_id=user_id)
    try:
        with store_errors("quota tier sync"):
            user = await db.get(User, user_id, populate_existing=True)
            if user is None:
                raise UserNotFound(user_id)
            tier = normalize_tier(user.tier)
            await store.sync_tier(db, identity.key, tier, now)
            await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Synced quota tier for user %d: %s", user_id, tier)
    return tier


async def get_quota_view(
    db: AsyncSession,
    identity: Identity,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> QuotaView:
    """Read-only view for progress display. Elapsed windows read as zero; nothing is written."""
    now = now or utcnow()
    settings = settings or get_settings()

    with store_errors("quota view"):
        tier = await billing_tier(db, identity)
        record = await store.load_record(db, identity.key)

    daily = weekly = 0
    if record is not None:
        if record.daily_window_start >= start_of_day(now):
            daily = record.daily_count
        if record.weekly_window_start >= start_of_iso_week(now):
            weekly = record.weekly_count

    return QuotaView(
        daily_count=daily,
        daily_limit=settings.daily_limit,
        weekly_count=weekly,
        weekly_limit=settings.weekly_limit,
        tier=tier,
    )
