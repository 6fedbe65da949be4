"""Shared FastAPI dependencies."""

from functools import lru_cache

from goalverse.database import get_session as _get_session
from goalverse.email.transport import BaseEmailProvider, create_transport

get_db = _get_session


@lru_cache
def get_transport() -> BaseEmailProvider:
    """The configured email provider, built once per process."""
    return create_transport()
