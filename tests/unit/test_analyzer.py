"""Signal analyzer tests: pure snapshot to intent rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from goalverse.notifications.analyzer import (
    GoalSnapshot,
    UserSnapshot,
    analyze,
    completion_time_phrase,
    days_since,
    milestone_title,
    next_goal_suggestions,
    refresh_payload,
    streak_achievements,
)
from goalverse.notifications.preferences import DEFAULT_PREFERENCES

# Wednesday
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


def snapshot(**kwargs) -> UserSnapshot:
    kwargs.setdefault("user_id", 1)
    kwargs.setdefault("tier", "free")
    kwargs.setdefault("last_activity_at", NOW - timedelta(hours=2))
    return UserSnapshot(**kwargs)


def by_type(intents):
    return {i.type: i for i in intents}


class TestHelpers:
    def test_days_since_without_activity(self):
        assert days_since(None, NOW) == 365

    def test_days_since_floors(self):
        assert days_since(NOW - timedelta(days=3, hours=23), NOW) == 3

    def test_days_since_future_is_zero(self):
        assert days_since(NOW + timedelta(hours=1), NOW) == 0

    def test_milestone_titles(self):
        assert milestone_title(7) == "One Week Strong!"
        assert milestone_title(365) == "One Year Legend!"
        assert milestone_title(12) == "12 Days of Success!"

    def test_streak_achievements_accumulate(self):
        assert streak_achievements(14) == ["Built a sustainable habit", "Proven consistency"]
        assert streak_achievements(6) == []

    def test_completion_time_phrase(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert completion_time_phrase(start, start + timedelta(hours=5)) == "same day"
        assert completion_time_phrase(start, start + timedelta(days=1)) == "1 day"
        assert completion_time_phrase(start, start + timedelta(days=4)) == "4 days"
        assert completion_time_phrase(start, start + timedelta(days=15)) == "2 weeks"
        assert completion_time_phrase(start, start + timedelta(days=65)) == "2 months"

    def test_suggestions_by_category(self):
        assert next_goal_suggestions("Career")[0]["title"] == "Leadership Development"
        assert next_goal_suggestions("Cooking")[0]["title"] == "Bigger Challenge"
        assert next_goal_suggestions(None)[1]["title"] == "New Area"


class TestActiveUser:
    """A recently active free user with no streak milestone gets nothing."""

    def test_no_intents(self):
        assert analyze(snapshot(current_streak=3), NOW) == []


class TestWeeklySummary:
    def test_premium_only(self):
        assert "weekly_summary" not in by_type(analyze(snapshot(tier="free"), NOW))
        assert "weekly_summary" in by_type(analyze(snapshot(tier="premium"), NOW))

    def test_next_monday_at_preferred_time(self):
        prefs = {**DEFAULT_PREFERENCES, "preferred_time": "08:30"}
        intent = by_type(analyze(snapshot(tier="premium", preferences=prefs), NOW))["weekly_summary"]
        assert intent.scheduled_for == datetime(2026, 3, 9, 8, 30, tzinfo=timezone.utc)
        assert intent.recurring is True
        assert intent.recurrence_pattern == "weekly"

    def test_local_timezone(self):
        """09:00 in New York on Monday March 9 2026 (EDT, UTC-4) is 13:00 UTC."""
        prefs = {**DEFAULT_PREFERENCES, "timezone": "America/New_York"}
        intent = by_type(analyze(snapshot(tier="premium", preferences=prefs), NOW))["weekly_summary"]
        assert intent.scheduled_for == datetime(2026, 3, 9, 13, 0, tzinfo=timezone.utc)

    def test_payload_counts(self):
        goals = (
            GoalSnapshot(1, "Run", "completed", NOW - timedelta(days=20), completed_at=NOW - timedelta(days=2)),
            GoalSnapshot(2, "Read", "completed", NOW - timedelta(days=40), completed_at=NOW - timedelta(days=10)),
            GoalSnapshot(3, "Write", "active", NOW - timedelta(days=5)),
        )
        intent = by_type(analyze(snapshot(tier="premium", goals=goals, current_streak=4), NOW))["weekly_summary"]
        assert intent.payload == {"completed_this_week": 1, "active_goals_count": 1, "current_streak": 4}


class TestRefreshPayload:
    """Stored payloads brought up to date at send time."""

    goals = (
        GoalSnapshot(1, "Run", "completed", NOW - timedelta(days=20), completed_at=NOW - timedelta(days=1)),
        GoalSnapshot(2, "Read", "active", NOW - timedelta(days=5)),
        GoalSnapshot(3, "Write", "active", NOW - timedelta(days=5)),
    )

    def test_weekly_summary_recomputed(self):
        stale = {"completed_this_week": 0, "active_goals_count": 0, "current_streak": 3}
        fresh = refresh_payload("weekly_summary", stale, snapshot(goals=self.goals, current_streak=9), NOW)
        assert fresh == {"completed_this_week": 1, "active_goals_count": 2, "current_streak": 9}
        assert stale["current_streak"] == 3

    def test_checkin_keeps_days_and_updates_goal_count(self):
        fresh = refresh_payload(
            "progress_checkin", {"days_since_activity": 4, "active_goals_count": 0}, snapshot(goals=self.goals), NOW,
        )
        assert fresh == {"days_since_activity": 4, "active_goals_count": 2}

    def test_celebrations_untouched(self):
        payload = {"current_streak": 7, "milestone": "One Week Strong!"}
        assert refresh_payload("streak_celebration", payload, snapshot(current_streak=8), NOW) == payload


class TestProgressCheckin:
    def test_three_to_seven_days_is_tomorrow_morning(self):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=4)), NOW))
        checkin = intents["progress_checkin"]
        assert checkin.scheduled_for == datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)
        assert checkin.payload["days_since_activity"] == 4

    def test_more_than_seven_days_is_six_hours(self):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=9)), NOW))
        assert intents["progress_checkin"].scheduled_for == NOW + timedelta(hours=6)

    def test_two_days_is_nothing(self):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=2)), NOW))
        assert "progress_checkin" not in intents

    @pytest.mark.parametrize(
        ("days", "expected"),
        [
            (2, None),
            (3, datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)),
            (7, datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)),
            (8, NOW + timedelta(hours=6)),
        ],
    )
    def test_thresholds(self, days, expected):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=days)), NOW))
        checkin = intents.get("progress_checkin")
        assert (checkin.scheduled_for if checkin else None) == expected


class TestStreakCelebration:
    def test_milestone_scheduled_two_hours_out(self):
        intent = by_type(analyze(snapshot(current_streak=7), NOW))["streak_celebration"]
        assert intent.scheduled_for == NOW + timedelta(hours=2)
        assert intent.dedupe_key == "streak:7"
        assert intent.payload["milestone"] == "One Week Strong!"
        assert intent.payload["achievements"] == ["Built a sustainable habit"]

    def test_non_milestone_ignored(self):
        assert "streak_celebration" not in by_type(analyze(snapshot(current_streak=8), NOW))


class TestGoalCompletion:
    def test_recent_completion(self):
        goal = GoalSnapshot(
            11, "Run a 10k", "completed", NOW - timedelta(days=15),
            category="Fitness", completed_at=NOW - timedelta(hours=3),
        )
        intent = by_type(analyze(snapshot(goals=(goal,)), NOW))["goal_completion"]
        assert intent.scheduled_for == NOW + timedelta(minutes=30)
        assert intent.dedupe_key == "goal:11"
        assert intent.payload["title"] == "Run a 10k"
        assert intent.payload["completion_time"] == "2 weeks"
        assert intent.payload["next_suggestions"][0]["title"] == "Advanced Fitness Challenge"

    def test_default_category(self):
        goal = GoalSnapshot(12, "Tidy", "completed", NOW - timedelta(days=1), completed_at=NOW - timedelta(hours=1))
        intent = by_type(analyze(snapshot(goals=(goal,)), NOW))["goal_completion"]
        assert intent.payload["category"] == "General"

    def test_old_completion_ignored(self):
        goal = GoalSnapshot(13, "Old", "completed", NOW - timedelta(days=9), completed_at=NOW - timedelta(days=2))
        assert "goal_completion" not in by_type(analyze(snapshot(goals=(goal,)), NOW))

    def test_one_intent_per_goal(self):
        goals = tuple(
            GoalSnapshot(i, f"Goal {i}", "completed", NOW - timedelta(days=3), completed_at=NOW - timedelta(hours=i))
            for i in (1, 2)
        )
        keys = [i.dedupe_key for i in analyze(snapshot(goals=goals), NOW) if i.type == "goal_completion"]
        assert keys == ["goal:1", "goal:2"]


class TestInactivityReminder:
    def test_long_absence_is_urgent(self):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=20)), NOW))
        reminder = intents["inactivity_reminder"]
        assert reminder.scheduled_for == NOW + timedelta(hours=1)
        assert reminder.payload["days_since_activity"] == 20

    def test_five_days_is_tomorrow_nine(self):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=5)), NOW))
        assert intents["inactivity_reminder"].scheduled_for == datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        ("days", "expected"),
        [
            (4, None),
            (5, datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)),
            (13, datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)),
            (14, NOW + timedelta(hours=1)),
        ],
    )
    def test_thresholds(self, days, expected):
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=days)), NOW))
        reminder = intents.get("inactivity_reminder")
        assert (reminder.scheduled_for if reminder else None) == expected

    def test_no_activity_ever(self):
        intents = by_type(analyze(snapshot(last_activity_at=None), NOW))
        assert intents["inactivity_reminder"].payload["days_since_activity"] == 365
        assert intents["inactivity_reminder"].payload["last_activity"] is None


class TestPreferences:
    """Disabled types and master switches produce no intents."""

    def test_disabled_type(self):
        prefs = {**DEFAULT_PREFERENCES, "inactivity_reminder": False}
        intents = by_type(analyze(snapshot(last_activity_at=NOW - timedelta(days=20), preferences=prefs), NOW))
        assert "inactivity_reminder" not in intents
        assert "progress_checkin" in intents

    def test_email_notifications_off(self):
        prefs = {**DEFAULT_PREFERENCES, "email_notifications": False}
        assert analyze(snapshot(last_activity_at=None, current_streak=7, preferences=prefs), NOW) == []

    def test_frequency_never(self):
        prefs = {**DEFAULT_PREFERENCES, "frequency": "never"}
        assert analyze(snapshot(last_activity_at=None, preferences=prefs), NOW) == []


class TestDeterminism:
    def test_same_input_same_output(self):
        snap = snapshot(tier="premium", current_streak=30, last_activity_at=NOW - timedelta(days=6))
        assert analyze(snap, NOW) == analyze(snap, NOW)
