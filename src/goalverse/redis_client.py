"""Redis client for the request limiter and the /ready report.

Nothing quota- or notification-related is stored here; the database is the
only source of truth for both. Socket timeouts are short and the limiter
fails open on any Redis error.
"""

import redis.asyncio as redis

from goalverse.config import Settings

_pool: redis.Redis | None = None


async def init_redis(settings: Settings) -> None:
    """Create the client from settings. Connections are opened lazily."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """The shared client. Callers check ``redis_available()`` first."""
    if _pool is None:
        msg = "Redis is not configured for this process"
        raise RuntimeError(msg)
    return _pool


def redis_available() -> bool:
    """False in processes that never configured Redis, such as tests and the arq worker."""
    return _pool is not None
