"""arq worker for notification scheduling.

Runs as a separate process: ``arq goalverse.workers.notifications.WorkerSettings``.
Sweeps run every minute; several workers may run at once because every
row is claimed before it is dispatched.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from goalverse.config import get_settings
from goalverse.database import close_db, get_session_factory, init_db
from goalverse.email.transport import create_transport
from goalverse.errors import UserNotFound
from goalverse.middleware.logging import setup_logging
from goalverse.notifications.scheduler import cleanup, reconcile, sweep
from goalverse.notifications.snapshot import user_ids_after

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB connections and the email transport on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    ctx["transport"] = create_transport(settings)
    logger.info("Notification worker started (provider=%s)", settings.email_provider)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    logger.info("Notification worker shut down")


async def sweep_due_notifications(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Periodic task: dispatch every due notification."""
    async with get_session_factory()() as db:
        result = await sweep(db, ctx["transport"])
    return result.as_dict()


async def reconcile_active_users(ctx: dict) -> int:  # type: ignore[type-arg]
    """Periodic task: analyze every user in id order and queue new notifications."""
    batch_size = get_settings().reconcile_batch_size
    scheduled = 0
    last_id = 0
    async with get_session_factory()() as db:
        while True:
            user_ids = await user_ids_after(db, last_id, batch_size)
            if not user_ids:
                break
            for user_id in user_ids:
                try:
                    result = await reconcile(db, user_id)
                except UserNotFound:
                    # deleted since the page was read
                    continue
                scheduled += result.scheduled_count
            last_id = user_ids[-1]
    logger.info("Reconcile pass complete: %d notifications scheduled", scheduled)
    return scheduled


async def cleanup_notifications(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Daily task: drop finished notifications and old log rows."""
    async with get_session_factory()() as db:
        result = await cleanup(db)
    return {"notifications": result.notifications, "logs": result.logs}


class WorkerSettings:
    """arq worker settings for the notification scheduler."""

    functions = [sweep_due_notifications, reconcile_active_users, cleanup_notifications]
    cron_jobs = [
        cron(sweep_due_notifications, second=0),
        cron(reconcile_active_users, minute={0, 30}),
        cron(cleanup_notifications, hour=3, minute=15),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4
    job_timeout = 600
