"""Calendar window utilities.

Quota windows are always computed in UTC: a day starts at 00:00 UTC and
an ISO week starts on Monday 00:00 UTC. User timezones only decide *when
within a day* a notification fires (see ``next_weekday_at`` and
``tomorrow_at``); they never move a reset boundary.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_HHMM = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

MONDAY = 0


def utcnow() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def _require_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        msg = f"naive datetime not allowed: {dt!r}"
        raise ValueError(msg)
    return dt.astimezone(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    """00:00 UTC of the calendar day containing ``now``."""
    now = _require_aware(now)
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = _require_aware(dt).date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def start_of_iso_week(now: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing ``now``."""
    return datetime.combine(get_monday(now), time.min, tzinfo=timezone.utc)


def get_week_iso(dt: datetime) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return _require_aware(dt).strftime("%G-W%V")


def day_key(dt: datetime) -> str:
    """UTC calendar day as 'YYYY-MM-DD' (anonymous identity bucket)."""
    return _require_aware(dt).date().isoformat()


def parse_hhmm(value: str) -> time:
    """Parse 'HH:MM' into a time. Raises ValueError on anything else."""
    match = _HHMM.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        msg = f"expected HH:MM, got {value!r}"
        raise ValueError(msg)
    return time(int(match.group(1)), int(match.group(2)))


def resolve_timezone(name: str | None) -> ZoneInfo:
    """ZoneInfo for an IANA name, UTC for empty or unknown names."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _local_slot(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def next_weekday_at(now: datetime, weekday: int, at: time, tz: ZoneInfo) -> datetime:
    """First ``weekday`` at local time ``at`` strictly after ``now`` (returned in UTC)."""
    local_now = _require_aware(now).astimezone(tz)
    days_ahead = (weekday - local_now.weekday()) % 7
    candidate = _local_slot(local_now.date() + timedelta(days=days_ahead), at, tz)
    if candidate <= now:
        candidate = _local_slot(local_now.date() + timedelta(days=days_ahead + 7), at, tz)
    return candidate


def tomorrow_at(now: datetime, at: time, tz: ZoneInfo) -> datetime:
    """Local time ``at`` on the day after ``now`` in ``tz`` (returned in UTC)."""
    local_now = _require_aware(now).astimezone(tz)
    return _local_slot(local_now.date() + timedelta(days=1), at, tz)
