"""Advisory quota client: server authority, offline fallback, no double counting."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from goalverse.clock import utcnow
from goalverse.errors import QuotaUnavailable
from goalverse.quota.client import QuotaClient


def view_json(daily: int = 0, weekly: int = 0, tier: str = "free") -> dict:
    return {
        "daily_count": daily,
        "daily_limit": 10,
        "weekly_count": weekly,
        "weekly_limit": 3,
        "tier": tier,
        "remaining": None,
    }


class FakeServer:
    """Mock quota API that can be switched offline."""

    def __init__(self, weekly: int = 0, daily: int | None = None) -> None:
        self.online = True
        self.status_code = 200
        self.weekly = weekly
        self.daily = daily
        self.requests: list[httpx.Request] = []

    def view(self) -> dict:
        return view_json(daily=self.weekly if self.daily is None else self.daily, weekly=self.weekly)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.online:
            raise httpx.ConnectError("connection refused", request=request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"detail": "nope"})
        if request.url.path.endswith("/consume"):
            allowed = self.weekly < 3
            if allowed:
                self.weekly += 1
            return httpx.Response(200, json={
                "allowed": allowed,
                "reason": None if allowed else "weekly_limit",
                "view": self.view(),
            })
        return httpx.Response(200, json=self.view())


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_client(server: FakeServer, clock=utcnow) -> QuotaClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(server), base_url="http://quota.test")
    return QuotaClient(http, token="tok", clock=clock)


class TestOnline:
    @pytest.mark.asyncio
    async def test_server_decision_is_confirmed(self):
        server = FakeServer()
        client = make_client(server)
        decision = await client.try_consume()
        assert decision.allowed is True
        assert decision.confirmed is True
        assert client.view.weekly_count == 1
        assert server.requests[0].headers["authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_server_denial_passed_through(self):
        client = make_client(FakeServer(weekly=3))
        decision = await client.try_consume()
        assert decision.allowed is False
        assert decision.reason == "weekly_limit"
        assert decision.confirmed is True


class TestOffline:
    @pytest.mark.asyncio
    async def test_no_cache_raises(self):
        server = FakeServer()
        server.online = False
        with pytest.raises(QuotaUnavailable):
            await make_client(server).try_consume()

    @pytest.mark.asyncio
    async def test_optimistic_allow_is_unconfirmed(self):
        server = FakeServer(weekly=1)
        client = make_client(server)
        await client.refresh()
        server.online = False

        decision = await client.try_consume()
        assert decision.allowed is True
        assert decision.confirmed is False
        assert client.unconfirmed == 1
        assert client.view.weekly_count == 2

    @pytest.mark.asyncio
    async def test_local_limit_enforced(self):
        server = FakeServer(weekly=2)
        client = make_client(server)
        await client.refresh()
        server.online = False

        assert (await client.try_consume()).allowed is True
        denied = await client.try_consume()
        assert denied.allowed is False
        assert denied.reason == "weekly_limit"
        assert client.unconfirmed == 1

    @pytest.mark.asyncio
    async def test_server_error_falls_back(self):
        server = FakeServer()
        client = make_client(server)
        await client.refresh()
        server.status_code = 503
        decision = await client.try_consume()
        assert decision.confirmed is False

    @pytest.mark.asyncio
    async def test_client_error_propagates(self):
        server = FakeServer()
        server.status_code = 401
        with pytest.raises(httpx.HTTPStatusError):
            await make_client(server).try_consume()


class TestReconnect:
    """The server view replaces local state; offline increments are not merged."""

    @pytest.mark.asyncio
    async def test_refresh_discards_unconfirmed(self):
        server = FakeServer(weekly=1)
        client = make_client(server)
        await client.refresh()
        server.online = False
        await client.try_consume()
        assert client.unconfirmed == 1

        server.online = True
        view = await client.refresh()
        assert client.unconfirmed == 0
        assert view.weekly_count == 1
        assert client.view.weekly_count == 1

    @pytest.mark.asyncio
    async def test_refresh_offline_keeps_cache(self):
        server = FakeServer(weekly=2)
        client = make_client(server)
        await client.refresh()
        server.online = False
        assert await client.refresh() is None
        assert client.view.weekly_count == 2


class TestOfflineWindows:
    """Cached counts from an elapsed window read as zero."""

    # Sunday evening, the last day of ISO week 2026-W10
    SUNDAY = datetime(2026, 3, 8, 22, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_new_week_allows_locally(self):
        clock = FakeClock(self.SUNDAY)
        server = FakeServer(weekly=3)
        client = make_client(server, clock)
        await client.refresh()
        server.online = False

        assert (await client.try_consume()).reason == "weekly_limit"

        clock.now = self.SUNDAY + timedelta(hours=3)
        decision = await client.try_consume()
        assert decision.allowed is True
        assert decision.confirmed is False
        assert client.view.weekly_count == 1
        assert client.view.daily_count == 1

    @pytest.mark.asyncio
    async def test_new_day_clears_daily_only(self):
        clock = FakeClock(self.SUNDAY - timedelta(days=3))
        server = FakeServer(weekly=2, daily=10)
        client = make_client(server, clock)
        await client.refresh()
        server.online = False

        assert (await client.try_consume()).reason == "daily_limit"

        clock.now += timedelta(days=1)
        assert client.view.daily_count == 0
        assert client.view.weekly_count == 2
        assert (await client.try_consume()).allowed is True
        assert (await client.try_consume()).reason == "weekly_limit"

    @pytest.mark.asyncio
    async def test_same_day_keeps_counts(self):
        clock = FakeClock(self.SUNDAY - timedelta(hours=10))
        server = FakeServer(weekly=3)
        client = make_client(server, clock)
        await client.refresh()
        server.online = False

        clock.now = self.SUNDAY + timedelta(hours=1, minutes=59)
        assert (await client.try_consume()).reason == "weekly_limit"
