"""Notification types, statuses and fixed schedule parameters."""

from __future__ import annotations

from datetime import time, timedelta

WEEKLY_SUMMARY = "weekly_summary"
PROGRESS_CHECKIN = "progress_checkin"
STREAK_CELEBRATION = "streak_celebration"
GOAL_COMPLETION = "goal_completion"
INACTIVITY_REMINDER = "inactivity_reminder"

NOTIFICATION_TYPES = frozenset({
    WEEKLY_SUMMARY,
    PROGRESS_CHECKIN,
    STREAK_CELEBRATION,
    GOAL_COMPLETION,
    INACTIVITY_REMINDER,
})

# A sent record with the same dedupe key also blocks a new insert for these
ONCE_PER_KEY_TYPES = frozenset({STREAK_CELEBRATION, GOAL_COMPLETION})

PENDING = "pending"
SENT = "sent"
FAILED = "failed"
CANCELLED = "cancelled"
TERMINAL_STATUSES = frozenset({SENT, FAILED, CANCELLED})

# Log-only outcome for preference changes and other non-dispatch events
INFO = "info"

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
RECURRENCE_PATTERNS = frozenset({DAILY, WEEKLY, MONTHLY})

STREAK_MILESTONES = (7, 14, 30, 60, 90, 180, 365)

NO_ACTIVITY_DAYS = 365

CHECKIN_SOON_DELAY = timedelta(hours=6)
CHECKIN_LOCAL_TIME = time(10, 0)
STREAK_DELAY = timedelta(hours=2)
GOAL_COMPLETION_DELAY = timedelta(minutes=30)
GOAL_COMPLETION_LOOKBACK = timedelta(hours=24)
INACTIVITY_URGENT_DELAY = timedelta(hours=1)
INACTIVITY_LOCAL_TIME = time(9, 0)
