"""Advisory client-side mirror of a quota view.

Used by front-end adapters and tooling that want instant feedback without
a round trip for every render. The server is always authoritative:

* a successful server response replaces the local view and throws away
  any increments made while offline (no merging, so nothing is counted
  twice);
* while the server is unreachable, ``try_consume`` may allow optimistically
  from the last known view, but the result is marked unconfirmed and the
  next successful contact overrides it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

import httpx

from goalverse.clock import start_of_day, start_of_iso_week, utcnow
from goalverse.errors import QuotaUnavailable
from goalverse.quota.service import DAILY_LIMIT, WEEKLY_LIMIT, QuotaView
from goalverse.quota.store import PREMIUM

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientDecision:
    allowed: bool
    confirmed: bool
    reason: str | None = None


def _view_from_json(data: dict[str, Any]) -> QuotaView:
    return QuotaView(
        daily_count=int(data["daily_count"]),
        daily_limit=int(data["daily_limit"]),
        weekly_count=int(data["weekly_count"]),
        weekly_limit=int(data["weekly_limit"]),
        tier=str(data["tier"]),
    )


class QuotaClient:
    """Read-through cache over the quota API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        prefix: str = "/api/v1/quota",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._clock = clock
        self._server_view: QuotaView | None = None
        self._as_of: datetime | None = None
        self._unconfirmed = 0
        # unconfirmed increments still inside the current day / ISO week
        self._local_daily = 0
        self._local_weekly = 0

    @property
    def unconfirmed(self) -> int:
        """Optimistic local increments not yet acknowledged by the server."""
        return self._unconfirmed

    @property
    def view(self) -> QuotaView | None:
        """Last server view plus unconfirmed local increments, with elapsed windows read as zero."""
        if self._server_view is None:
            return None
        self._roll(self._clock())
        if not (self._local_daily or self._local_weekly):
            return self._server_view
        return replace(
            self._server_view,
            daily_count=self._server_view.daily_count + self._local_daily,
            weekly_count=self._server_view.weekly_count + self._local_weekly,
        )

    def _roll(self, now: datetime) -> None:
        """Zero the cached counters of any window that has ended since the last update."""
        if self._server_view is None or self._as_of is None:
            return
        if start_of_iso_week(now) > start_of_iso_week(self._as_of):
            self._server_view = replace(self._server_view, daily_count=0, weekly_count=0)
            self._local_daily = self._local_weekly = 0
        elif start_of_day(now) > start_of_day(self._as_of):
            self._server_view = replace(self._server_view, daily_count=0)
            self._local_daily = 0
        self._as_of = max(now, self._as_of)

    def _adopt(self, data: dict[str, Any]) -> QuotaView:
        self._server_view = _view_from_json(data)
        self._as_of = self._clock()
        if self._unconfirmed:
            logger.info("Discarding %d unconfirmed local quota increments", self._unconfirmed)
        self._unconfirmed = self._local_daily = self._local_weekly = 0
        return self._server_view

    async def refresh(self) -> QuotaView | None:
        """Fetch the server view. Returns None (keeping the cache) when unreachable."""
        try:
            response = await self._client.get(self._prefix, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code < 500:
                raise
            logger.warning("Quota refresh failed with %d", exc.response.status_code)
            return None
        except httpx.TransportError:
            logger.warning("Quota refresh failed: server unreachable", exc_info=True)
            return None
        return self._adopt(response.json())

    async def try_consume(self, cost: int = 1) -> ClientDecision:
        """Ask the server; fall back to an unconfirmed local decision when it is unreachable."""
        try:
            response = await self._client.post(
                f"{self._prefix}/consume", json={"cost": cost}, headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code < 500:
                raise
            return self._local_decision(cost)
        except httpx.TransportError:
            return self._local_decision(cost)

        body = response.json()
        self._adopt(body["view"])
        return ClientDecision(allowed=bool(body["allowed"]), confirmed=True, reason=body.get("reason"))

    def _local_decision(self, cost: int) -> ClientDecision:
        view = self.view
        if view is None:
            msg = "Quota server unreachable and no cached quota view"
            raise QuotaUnavailable(msg)

        if view.tier != PREMIUM:
            if view.weekly_count + cost > view.weekly_limit:
                return ClientDecision(allowed=False, confirmed=False, reason=WEEKLY_LIMIT)
            if view.daily_count + cost > view.daily_limit:
                return ClientDecision(allowed=False, confirmed=False, reason=DAILY_LIMIT)

        self._unconfirmed += cost
        self._local_daily += cost
        self._local_weekly += cost
        logger.info("Quota server unreachable; optimistic local allow (%d unconfirmed)", self._unconfirmed)
        return ClientDecision(allowed=True, confirmed=False)
