"""Notification preferences.

Preferences are read at *send* time as well as at analysis time: turning a
type off suppresses anything already queued for it (the sweep records the
row as cancelled) without purging the queue eagerly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.clock import parse_hhmm, resolve_timezone, utcnow
from goalverse.db.models import NotificationPreferences
from goalverse.notifications import store
from goalverse.notifications.constants import INFO, NOTIFICATION_TYPES

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: dict[str, Any] = {
    "weekly_summary": True,
    "progress_checkin": True,
    "streak_celebration": True,
    "goal_completion": True,
    "inactivity_reminder": True,
    "email_notifications": True,
    "frequency": "smart",
    "preferred_time": "09:00",
    "timezone": "UTC",
}

BOOLEAN_FIELDS = (*sorted(NOTIFICATION_TYPES), "email_notifications")
FREQUENCIES = frozenset({"smart", "daily", "weekly", "never"})


def validate_preferences(raw: dict[str, Any], base: dict[str, Any] | None = None) -> dict[str, Any]:
    """Merge valid fields of ``raw`` over ``base`` (defaults when omitted).

    Invalid values are dropped, keeping whatever ``base`` had.
    """
    validated = dict(DEFAULT_PREFERENCES)
    if base:
        validated.update({k: v for k, v in base.items() if k in DEFAULT_PREFERENCES})

    for field in BOOLEAN_FIELDS:
        if isinstance(raw.get(field), bool):
            validated[field] = raw[field]

    # older clients send reminder_frequency
    frequency = raw.get("frequency", raw.get("reminder_frequency"))
    if frequency in FREQUENCIES:
        validated["frequency"] = frequency

    preferred_time = raw.get("preferred_time")
    if isinstance(preferred_time, str):
        try:
            at = parse_hhmm(preferred_time)
        except ValueError:
            pass
        else:
            validated["preferred_time"] = at.strftime("%H:%M")

    tz_name = raw.get("timezone")
    if isinstance(tz_name, str) and tz_name and resolve_timezone(tz_name).key == tz_name:
        validated["timezone"] = tz_name

    return validated


def notifications_enabled(preferences: dict[str, Any]) -> bool:
    """Master switches: email notifications on and frequency not 'never'."""
    if preferences.get("email_notifications") is False:
        return False
    return preferences.get("frequency") != "never"


def should_deliver(preferences: dict[str, Any], type_: str) -> bool:
    """Whether a notification of ``type_`` may be sent now."""
    if not notifications_enabled(preferences):
        return False
    return preferences.get(type_, DEFAULT_PREFERENCES.get(type_, True)) is not False


async def get_preferences(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """User's preferences merged over defaults."""
    row = await db.get(NotificationPreferences, user_id, populate_existing=True)
    if row is None or not row.preferences:
        return dict(DEFAULT_PREFERENCES)
    return validate_preferences(row.preferences)


async def update_preferences(
    db: AsyncSession,
    user_id: int,
    changes: dict[str, Any],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Validate and store preference changes. Does not touch queued or sent notifications."""
    now = now or utcnow()
    row = await db.get(NotificationPreferences, user_id)
    current = row.preferences if row is not None else None
    validated = validate_preferences(changes, base=current)

    if row is None:
        db.add(NotificationPreferences(user_id=user_id, preferences=validated, updated_at=now))
    else:
        row.preferences = validated
        row.updated_at = now

    await store.append_log(
        db, user_id=user_id, type_="preferences_updated", outcome=INFO, now=now,
    )
    await db.flush()
    logger.info("Updated notification preferences for user %d", user_id)
    return validated
