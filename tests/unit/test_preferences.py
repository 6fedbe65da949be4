"""Preference validation and delivery gating."""

from __future__ import annotations

from goalverse.notifications.preferences import (
    DEFAULT_PREFERENCES,
    notifications_enabled,
    should_deliver,
    validate_preferences,
)


class TestValidatePreferences:
    """Merging raw input over defaults."""

    def test_empty_gives_defaults(self):
        assert validate_preferences({}) == DEFAULT_PREFERENCES

    def test_valid_fields_applied(self):
        result = validate_preferences({
            "streak_celebration": False,
            "frequency": "weekly",
            "preferred_time": "7:15",
            "timezone": "Europe/Berlin",
        })
        assert result["streak_celebration"] is False
        assert result["frequency"] == "weekly"
        assert result["preferred_time"] == "07:15"
        assert result["timezone"] == "Europe/Berlin"

    def test_invalid_values_dropped(self):
        result = validate_preferences({
            "weekly_summary": "no",
            "frequency": "hourly",
            "preferred_time": "25:00",
            "timezone": "Nowhere/Special",
        })
        assert result == DEFAULT_PREFERENCES

    def test_unknown_keys_ignored(self):
        assert "favorite_color" not in validate_preferences({"favorite_color": "teal"})

    def test_legacy_reminder_frequency(self):
        assert validate_preferences({"reminder_frequency": "daily"})["frequency"] == "daily"

    def test_base_is_kept_for_untouched_fields(self):
        base = validate_preferences({"goal_completion": False, "timezone": "Asia/Tokyo"})
        result = validate_preferences({"frequency": "daily"}, base=base)
        assert result["goal_completion"] is False
        assert result["timezone"] == "Asia/Tokyo"
        assert result["frequency"] == "daily"

    def test_invalid_value_keeps_base(self):
        base = validate_preferences({"preferred_time": "18:00"})
        assert validate_preferences({"preferred_time": "evening"}, base=base)["preferred_time"] == "18:00"


class TestShouldDeliver:
    def test_defaults_deliver_everything(self):
        for type_ in ("weekly_summary", "progress_checkin", "streak_celebration",
                      "goal_completion", "inactivity_reminder"):
            assert should_deliver(DEFAULT_PREFERENCES, type_)

    def test_type_switched_off(self):
        prefs = {**DEFAULT_PREFERENCES, "progress_checkin": False}
        assert not should_deliver(prefs, "progress_checkin")
        assert should_deliver(prefs, "goal_completion")

    def test_master_switch(self):
        prefs = {**DEFAULT_PREFERENCES, "email_notifications": False}
        assert not notifications_enabled(prefs)
        assert not should_deliver(prefs, "goal_completion")

    def test_frequency_never(self):
        prefs = {**DEFAULT_PREFERENCES, "frequency": "never"}
        assert not should_deliver(prefs, "weekly_summary")
