"""CORS for the coaching web app."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from goalverse.config import Settings

# Headers the web app reads to show remaining sessions and back off
_EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the web app origins. Auth is a bearer token, so no cookies are involved."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=_EXPOSED_HEADERS,
    )
