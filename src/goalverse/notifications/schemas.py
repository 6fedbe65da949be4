"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AwareDatetime, BaseModel, Field

NotificationType = Literal[
    "weekly_summary",
    "progress_checkin",
    "streak_celebration",
    "goal_completion",
    "inactivity_reminder",
]


class PreferencesResponse(BaseModel):
    weekly_summary: bool
    progress_checkin: bool
    streak_celebration: bool
    goal_completion: bool
    inactivity_reminder: bool
    email_notifications: bool
    frequency: Literal["smart", "daily", "weekly", "never"]
    preferred_time: str
    timezone: str


class UpdatePreferencesRequest(BaseModel):
    """Partial update. Unknown or invalid values are ignored."""

    preferences: dict[str, Any] = Field(default_factory=dict)


class ScheduledNotificationResponse(BaseModel):
    id: int
    type: str
    scheduled_for: datetime
    status: str
    recurring: bool
    recurrence_pattern: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class ScheduleRequest(BaseModel):
    type: NotificationType
    scheduled_for: AwareDatetime
    payload: dict[str, Any] = Field(default_factory=dict)
    recurring: bool = False
    recurrence_pattern: Literal["daily", "weekly", "monthly"] | None = None


class ScheduleResponse(BaseModel):
    scheduled: bool
    notification: ScheduledNotificationResponse | None = None


class CancelResponse(BaseModel):
    cancelled: int


class HistoryEntryResponse(BaseModel):
    id: int
    notification_id: int | None = None
    type: str
    outcome: str
    detail: str | None = None
    created_at: datetime
    opened_at: datetime | None = None
    clicked_at: datetime | None = None


class HistoryResponse(BaseModel):
    history: list[HistoryEntryResponse]


class StatsResponse(BaseModel):
    total_sent: int
    opened: int
    clicked: int
    open_rate: int
    click_rate: int
    most_engaging_type: str | None = None


class ReconcileResponse(BaseModel):
    scheduled_count: int
    skipped: int


class SweepResponse(BaseModel):
    processed: int
    sent: int
    failed: int
    cancelled: int


class CleanupResponse(BaseModel):
    notifications: int
    logs: int
