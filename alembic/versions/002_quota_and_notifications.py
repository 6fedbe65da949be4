"""Quota records, scheduled notifications, preferences and dispatch log.

Revision ID: 002_quota_and_notifications
Revises: 001_product_tables
Create Date: 2026-09-28
"""

from collections.abc import Sequence

import sqlalchemy as sa  # noqa: F401
from alembic import op

revision: str = "002_quota_and_notifications"
down_revision: str | None = "001_product_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS quota_records (
            identity_key         VARCHAR(128) PRIMARY KEY,
            user_id              BIGINT,
            daily_count          INT NOT NULL DEFAULT 0,
            daily_window_start   TIMESTAMPTZ NOT NULL,
            weekly_count         INT NOT NULL DEFAULT 0,
            weekly_window_start  TIMESTAMPTZ NOT NULL,
            tier                 VARCHAR(16) NOT NULL DEFAULT 'free',
            created_at           TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_quota_daily_nonneg CHECK (daily_count >= 0),
            CONSTRAINT ck_quota_weekly_nonneg CHECK (weekly_count >= 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_quota_records_user ON quota_records (user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS scheduled_notifications (
            id                  BIGSERIAL PRIMARY KEY,
            user_id             BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type                VARCHAR(32) NOT NULL,
            scheduled_for       TIMESTAMPTZ NOT NULL,
            payload             JSONB NOT NULL DEFAULT '{}'::jsonb,
            dedupe_key          VARCHAR(64),
            recurring           BOOLEAN NOT NULL DEFAULT FALSE,
            recurrence_pattern  VARCHAR(16),
            status              VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
            sent_at             TIMESTAMPTZ,
            error_message       TEXT,
            claim_token         VARCHAR(36),
            claimed_at          TIMESTAMPTZ,
            CONSTRAINT ck_scheduled_status
                CHECK (status IN ('pending', 'sent', 'failed', 'cancelled')),
            CONSTRAINT ck_scheduled_pattern
                CHECK (recurrence_pattern IS NULL OR recurrence_pattern IN ('daily', 'weekly', 'monthly'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_scheduled_notifications_due
        ON scheduled_notifications (status, scheduled_for)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_scheduled_notifications_dedupe
        ON scheduled_notifications (user_id, type, status)
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_scheduled_notifications_pending
        ON scheduled_notifications (user_id, type, coalesce(dedupe_key, ''))
        WHERE status = 'pending'
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_preferences (
            user_id      BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            preferences  JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at   TIMESTAMPTZ
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_logs (
            id               BIGSERIAL PRIMARY KEY,
            user_id          BIGINT NOT NULL,
            notification_id  BIGINT,
            type             VARCHAR(32) NOT NULL,
            recipient        VARCHAR(320),
            outcome          VARCHAR(16) NOT NULL,
            detail           TEXT,
            created_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
            opened_at        TIMESTAMPTZ,
            clicked_at       TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notification_logs_user
        ON notification_logs (user_id, created_at)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS notification_preferences CASCADE")
    op.execute("DROP TABLE IF EXISTS scheduled_notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS quota_records CASCADE")
