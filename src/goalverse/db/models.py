"""ORM models.

``users``, ``goals`` and ``user_activity`` belong to the wider product and
are read-only here. ``quota_records`` is written only by the quota guard;
``scheduled_notifications`` and ``notification_logs`` only by the
notification scheduler and store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from goalverse.db.base import Base, BigIntPK, JSONDocument, UTCDateTime

# ---------------------------------------------------------------------------
# Product tables (read-only collaborators)
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. ``tier`` is the billing source of truth."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="free", server_default="free")
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    goals: Mapped[list[Goal]] = relationship("Goal", back_populates="user")
    activity: Mapped[UserActivity | None] = relationship("UserActivity", uselist=False)


class Goal(Base):
    """Maps to the 'goals' table."""

    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    user: Mapped[User] = relationship("User", back_populates="goals")

    __table_args__ = (Index("idx_goals_user_status", "user_id", "status"),)


class UserActivity(Base):
    """Latest activity and day-streak per user, maintained by the chat flow."""

    __tablename__ = "user_activity"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------


class QuotaRecord(Base):
    """Per-identity usage counters with lazily rolled day and ISO-week windows."""

    __tablename__ = "quota_records"
    __table_args__ = (
        CheckConstraint("daily_count >= 0", name="ck_quota_daily_nonneg"),
        CheckConstraint("weekly_count >= 0", name="ck_quota_weekly_nonneg"),
        Index("idx_quota_records_user", "user_id"),
    )

    identity_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    daily_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    weekly_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weekly_window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="free")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class ScheduledNotification(Base):
    """One scheduled email. ``status`` only ever moves pending -> sent|failed|cancelled."""

    __tablename__ = "scheduled_notifications"
    __table_args__ = (
        Index("idx_scheduled_notifications_due", "status", "scheduled_for"),
        Index("idx_scheduled_notifications_dedupe", "user_id", "type", "status"),
        # at most one pending row per (user, type, dedupe key)
        Index(
            "uq_scheduled_notifications_pending",
            "user_id",
            "type",
            text("coalesce(dedupe_key, '')"),
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    dedupe_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurrence_pattern: Mapped[str | None] = mapped_column(String(16), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class NotificationPreferences(Base):
    """Per-user notification preferences stored as a JSON document."""

    __tablename__ = "notification_preferences"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    preferences: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class NotificationLog(Base):
    """Append-only dispatch log. Only the engagement stamps are set after insert."""

    __tablename__ = "notification_logs"
    __table_args__ = (Index("idx_notification_logs_user", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    notification_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    recipient: Mapped[str | None] = mapped_column(String(320), nullable=True)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    opened_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    clicked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
