"""Signal analyzer: turn a user snapshot into notification intents.

Pure functions only. The scheduler loads the snapshot, calls ``analyze``
and decides which intents survive deduplication.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

from goalverse.clock import MONDAY, next_weekday_at, parse_hhmm, resolve_timezone, tomorrow_at
from goalverse.notifications.constants import (
    CHECKIN_LOCAL_TIME,
    CHECKIN_SOON_DELAY,
    GOAL_COMPLETION,
    GOAL_COMPLETION_DELAY,
    GOAL_COMPLETION_LOOKBACK,
    INACTIVITY_LOCAL_TIME,
    INACTIVITY_REMINDER,
    INACTIVITY_URGENT_DELAY,
    NO_ACTIVITY_DAYS,
    PROGRESS_CHECKIN,
    STREAK_CELEBRATION,
    STREAK_DELAY,
    STREAK_MILESTONES,
    WEEKLY,
    WEEKLY_SUMMARY,
)
from goalverse.notifications.preferences import DEFAULT_PREFERENCES, notifications_enabled

GOAL_ACTIVE = "active"
GOAL_COMPLETED = "completed"

# Payload figures for these types are recomputed when the row is sent
REFRESHED_TYPES = frozenset({WEEKLY_SUMMARY, PROGRESS_CHECKIN, INACTIVITY_REMINDER})

MILESTONE_TITLES = {
    7: "One Week Strong!",
    14: "Two Weeks of Excellence!",
    30: "One Month Champion!",
    60: "Two Months of Dedication!",
    90: "Three Months of Consistency!",
    180: "Half Year Hero!",
    365: "One Year Legend!",
}

# (threshold, achievement) in ascending order
STREAK_ACHIEVEMENTS = (
    (7, "Built a sustainable habit"),
    (14, "Proven consistency"),
    (30, "Formed lasting behavioral change"),
    (60, "Demonstrated unwavering commitment"),
    (90, "Achieved lifestyle transformation"),
    (180, "Mastered long-term goal achievement"),
    (365, "Became an inspiration to others"),
)

NEXT_GOAL_SUGGESTIONS: dict[str, list[dict[str, str]]] = {
    "Fitness": [
        {"title": "Advanced Fitness Challenge", "description": "Take your fitness to the next level"},
        {"title": "Nutrition Optimization", "description": "Perfect your diet for better results"},
    ],
    "Career": [
        {"title": "Leadership Development", "description": "Build skills to lead and inspire others"},
        {"title": "Industry Expertise", "description": "Become a recognized expert in your field"},
    ],
    "Learning": [
        {"title": "Advanced Skill Mastery", "description": "Deepen your expertise in your chosen area"},
        {"title": "Teaching Others", "description": "Share your knowledge and help others learn"},
    ],
}
DEFAULT_SUGGESTIONS = [
    {"title": "Bigger Challenge", "description": "Set an even more ambitious goal"},
    {"title": "New Area", "description": "Explore a completely different goal category"},
]


@dataclass(frozen=True)
class GoalSnapshot:
    id: int
    title: str
    status: str
    created_at: datetime
    category: str | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class UserSnapshot:
    """Everything the analyzer looks at for one user."""

    user_id: int
    tier: str
    current_streak: int = 0
    last_activity_at: datetime | None = None
    goals: tuple[GoalSnapshot, ...] = ()
    preferences: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PREFERENCES))


@dataclass(frozen=True)
class NotificationIntent:
    user_id: int
    type: str
    scheduled_for: datetime
    payload: dict[str, Any]
    dedupe_key: str | None = None
    recurring: bool = False
    recurrence_pattern: str | None = None


def days_since(last_activity_at: datetime | None, now: datetime) -> int:
    """Whole days since the last activity; 365 when there has been none."""
    if last_activity_at is None:
        return NO_ACTIVITY_DAYS
    return max(0, (now - last_activity_at) // timedelta(days=1))


def milestone_title(streak: int) -> str:
    return MILESTONE_TITLES.get(streak, f"{streak} Days of Success!")


def streak_achievements(streak: int) -> list[str]:
    return [text for threshold, text in STREAK_ACHIEVEMENTS if streak >= threshold]


def completion_time_phrase(created_at: datetime, completed_at: datetime) -> str:
    """Human phrase for how long a goal took, e.g. 'same day' or '3 weeks'."""
    days = max(0, (completed_at - created_at) // timedelta(days=1))
    if days == 0:
        return "same day"
    if days == 1:
        return "1 day"
    if days < 7:
        return f"{days} days"
    if days < 30:
        return f"{days // 7} weeks"
    return f"{days // 30} months"


def next_goal_suggestions(category: str | None) -> list[dict[str, str]]:
    return [dict(s) for s in NEXT_GOAL_SUGGESTIONS.get(category or "", DEFAULT_SUGGESTIONS)]


def _preferred_time(preferences: dict[str, Any]) -> time:
    try:
        return parse_hhmm(preferences.get("preferred_time") or "")
    except ValueError:
        return parse_hhmm(DEFAULT_PREFERENCES["preferred_time"])


def _enabled(preferences: dict[str, Any], type_: str) -> bool:
    return preferences.get(type_, DEFAULT_PREFERENCES[type_]) is not False


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def active_goals_count(snapshot: UserSnapshot) -> int:
    return sum(1 for g in snapshot.goals if g.status == GOAL_ACTIVE)


def weekly_stats(snapshot: UserSnapshot, now: datetime) -> dict[str, int]:
    """Figures shown in the weekly summary."""
    week_ago = now - timedelta(days=7)
    completed = sum(
        1 for g in snapshot.goals
        if g.status == GOAL_COMPLETED and g.completed_at is not None and g.completed_at > week_ago
    )
    return {
        "completed_this_week": completed,
        "active_goals_count": active_goals_count(snapshot),
        "current_streak": snapshot.current_streak,
    }


def refresh_payload(type_: str, payload: dict[str, Any], snapshot: UserSnapshot, now: datetime) -> dict[str, Any]:
    """Copy of a stored payload with its live figures recomputed from ``snapshot``.

    Types outside ``REFRESHED_TYPES`` are returned unchanged.
    """
    refreshed = dict(payload or {})
    if type_ == WEEKLY_SUMMARY:
        refreshed.update(weekly_stats(snapshot, now))
    elif type_ in REFRESHED_TYPES:
        refreshed["active_goals_count"] = active_goals_count(snapshot)
    return refreshed


def analyze(snapshot: UserSnapshot, now: datetime) -> list[NotificationIntent]:
    """Notification intents for ``snapshot`` at ``now``.

    Deterministic: the same snapshot and instant always yield the same
    intents in the same order.
    """
    prefs = {**DEFAULT_PREFERENCES, **(snapshot.preferences or {})}
    if not notifications_enabled(prefs):
        return []

    tz = resolve_timezone(prefs.get("timezone"))
    days = days_since(snapshot.last_activity_at, now)
    active_goals = [g for g in snapshot.goals if g.status == GOAL_ACTIVE]
    intents: list[NotificationIntent] = []

    def intent(type_: str, at: datetime, payload: dict[str, Any], **extra: Any) -> None:
        intents.append(NotificationIntent(
            user_id=snapshot.user_id, type=type_, scheduled_for=at, payload=payload, **extra,
        ))

    if _enabled(prefs, WEEKLY_SUMMARY) and snapshot.tier == "premium":
        intent(
            WEEKLY_SUMMARY,
            next_weekday_at(now, MONDAY, _preferred_time(prefs), tz),
            weekly_stats(snapshot, now),
            recurring=True,
            recurrence_pattern=WEEKLY,
        )

    if _enabled(prefs, PROGRESS_CHECKIN):
        checkin_at = None
        if 3 <= days <= 7:
            checkin_at = tomorrow_at(now, CHECKIN_LOCAL_TIME, tz)
        elif days > 7:
            checkin_at = now + CHECKIN_SOON_DELAY
        if checkin_at is not None:
            intent(PROGRESS_CHECKIN, checkin_at, {
                "last_activity": _iso(snapshot.last_activity_at),
                "days_since_activity": days,
                "active_goals_count": len(active_goals),
            })

    streak = snapshot.current_streak
    if _enabled(prefs, STREAK_CELEBRATION) and streak in STREAK_MILESTONES:
        intent(
            STREAK_CELEBRATION,
            now + STREAK_DELAY,
            {
                "current_streak": streak,
                "milestone": milestone_title(streak),
                "achievements": streak_achievements(streak),
            },
            dedupe_key=f"streak:{streak}",
        )

    if _enabled(prefs, GOAL_COMPLETION):
        since = now - GOAL_COMPLETION_LOOKBACK
        for goal in snapshot.goals:
            if goal.status != GOAL_COMPLETED or goal.completed_at is None or goal.completed_at <= since:
                continue
            intent(
                GOAL_COMPLETION,
                now + GOAL_COMPLETION_DELAY,
                {
                    "goal_id": goal.id,
                    "title": goal.title,
                    "category": goal.category or "General",
                    "completion_time": completion_time_phrase(goal.created_at, goal.completed_at),
                    "next_suggestions": next_goal_suggestions(goal.category),
                },
                dedupe_key=f"goal:{goal.id}",
            )

    if _enabled(prefs, INACTIVITY_REMINDER) and days >= 5:
        if days >= 14:
            remind_at = now + INACTIVITY_URGENT_DELAY
        else:
            remind_at = tomorrow_at(now, INACTIVITY_LOCAL_TIME, tz)
        intent(INACTIVITY_REMINDER, remind_at, {
            "last_activity": _iso(snapshot.last_activity_at),
            "days_since_activity": days,
            "active_goals_count": len(active_goals),
        })

    return intents
