"""Shared test fixtures.

Every test that touches the database gets its own SQLite file under
``tmp_path`` with the schema created from the ORM metadata. Redis is never
initialized, so request rate limiting is bypassed in API tests.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone

os.environ["GV_JWT_SECRET"] = "test-secret-key-for-goalverse-tests"
os.environ["GV_CRON_SECRET"] = "test-cron-secret"
os.environ["GV_EMAIL_PROVIDER"] = "console"
os.environ["GV_LOG_FORMAT"] = "console"
os.environ["GV_DISPATCH_TIMEOUT_SECONDS"] = "0.5"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from goalverse.auth.jwt import create_access_token  # noqa: E402
from goalverse.config import get_settings  # noqa: E402
from goalverse.database import get_session  # noqa: E402
from goalverse.db.base import Base  # noqa: E402
from goalverse.db.models import Goal, User, UserActivity  # noqa: E402
from goalverse.dependencies import get_transport  # noqa: E402
from goalverse.email.transport import ConsoleProvider  # noqa: E402
from goalverse.main import create_app  # noqa: E402

get_settings.cache_clear()

MakeUser = Callable[..., Awaitable[User]]


def _bearer(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Factory: Authorization headers for a user id."""
    return _bearer


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"X-Cron-Secret": os.environ["GV_CRON_SECRET"]}


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file with the full schema."""
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'goalverse-test.db'}",
        connect_args={"timeout": 30},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for setup and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db: AsyncSession) -> MakeUser:
    """Factory: create a user, optionally with activity and goals."""
    counter = {"n": 0}

    async def _make(
        email: str | None = None,
        tier: str = "free",
        streak: int = 0,
        last_activity_at: datetime | None = None,
        goals: list[dict] | None = None,
    ) -> User:
        counter["n"] += 1
        if email is None:
            email = f"coach.user{counter['n']}@example.com"
        user = User(email=email, tier=tier, created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        db.add(user)
        await db.flush()
        if streak or last_activity_at is not None:
            db.add(UserActivity(
                user_id=user.id,
                current_streak=streak,
                longest_streak=streak,
                last_activity_at=last_activity_at,
            ))
        for fields in goals or []:
            db.add(Goal(user_id=user.id, **fields))
        await db.commit()
        return user

    return _make


@pytest.fixture
def transport() -> ConsoleProvider:
    """In-memory email transport; sent messages land in ``transport.outbox``."""
    return ConsoleProvider()


@pytest_asyncio.fixture
async def client(session_factory, transport) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, wired to the per-test database."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_transport] = lambda: transport

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
