"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from goalverse.admin.router import router as admin_router
from goalverse.config import get_settings
from goalverse.database import close_db, init_db
from goalverse.health.router import router as health_router
from goalverse.middleware import setup_middleware
from goalverse.notifications.router import router as notifications_router
from goalverse.quota.router import router as quota_router
from goalverse.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings)
    try:
        await get_redis().ping()
    except RedisError:
        logger.warning("Redis unreachable at startup; request limiting is disabled until it returns",
                       exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="GOALVERSE Quota & Notifications API",
        description="Usage quota enforcement and coaching notification scheduling for GOALVERSE",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(quota_router)
    app.include_router(notifications_router)
    app.include_router(admin_router)

    return app


app = create_app()
