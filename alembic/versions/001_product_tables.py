"""Product tables read by the quota and notification services.

users, goals and user_activity are owned by the main product. They are
created here only when missing, so a standalone deployment and the shared
database both migrate cleanly.

Revision ID: 001_product_tables
Revises:
Create Date: 2026-09-28
"""

from collections.abc import Sequence

import sqlalchemy as sa  # noqa: F401
from alembic import op

revision: str = "001_product_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id          BIGSERIAL PRIMARY KEY,
            email       VARCHAR(320) UNIQUE,
            tier        VARCHAR(16) NOT NULL DEFAULT 'free',
            created_at  TIMESTAMPTZ DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS goals (
            id            BIGSERIAL PRIMARY KEY,
            user_id       BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title         VARCHAR(200) NOT NULL,
            category      VARCHAR(64),
            status        VARCHAR(16) NOT NULL DEFAULT 'active',
            created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at  TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_goals_user_status ON goals (user_id, status)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity (
            user_id           BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            last_activity_at  TIMESTAMPTZ,
            current_streak    INT NOT NULL DEFAULT 0,
            longest_streak    INT NOT NULL DEFAULT 0,
            updated_at        TIMESTAMPTZ
        )
    """)


def downgrade() -> None:
    # Owned by the product; never dropped from here.
    pass
