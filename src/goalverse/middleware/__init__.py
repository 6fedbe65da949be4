"""Middleware registration."""

from fastapi import FastAPI

from goalverse.config import Settings
from goalverse.middleware.cors import setup_cors
from goalverse.middleware.error_handler import setup_error_handlers
from goalverse.middleware.logging import setup_logging
from goalverse.middleware.rate_limit import RateLimitMiddleware
from goalverse.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette executes middleware in reverse-add order (last added = outermost).
    CORS must be outermost so it wraps error responses from inner middleware (e.g. 429).
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        ip_hash_salt=settings.ip_hash_salt,
        trust_forwarded_for=settings.trust_forwarded_for,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
