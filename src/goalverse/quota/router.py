"""Quota API endpoints: 2 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.auth.dependencies import get_identity
from goalverse.database import get_session
from goalverse.identity import Identity
from goalverse.quota.schemas import ConsumeRequest, ConsumeResponse, QuotaViewResponse
from goalverse.quota.service import get_quota_view, try_consume

router = APIRouter(prefix="/api/v1/quota", tags=["Quota"])


@router.post("/consume", response_model=ConsumeResponse)
async def consume(
    body: ConsumeRequest | None = None,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """Take a slot for a new coaching session. A denial is a 200 with allowed=false."""
    cost = body.cost if body else 1
    decision = await try_consume(db, identity, cost)
    return ConsumeResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        view=QuotaViewResponse(**decision.view.as_dict()),
    )


@router.get("", response_model=QuotaViewResponse)
async def quota_view(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """Current counters and limits for progress display."""
    view = await get_quota_view(db, identity)
    return QuotaViewResponse(**view.as_dict())
