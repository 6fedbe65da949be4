"""Operator API endpoints: 4 routes.

Called by the cron trigger and by operators. Every route requires the
``X-Cron-Secret`` header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.auth.dependencies import require_cron_secret
from goalverse.database import get_session
from goalverse.dependencies import get_transport
from goalverse.email.transport import BaseEmailProvider
from goalverse.notifications.scheduler import cleanup, reconcile, sweep
from goalverse.notifications.schemas import CleanupResponse, ReconcileResponse, SweepResponse
from goalverse.quota.service import sync_tier

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["Admin"],
    dependencies=[Depends(require_cron_secret)],
)


@router.post("/notifications/sweep", response_model=SweepResponse)
async def run_sweep(
    db: AsyncSession = Depends(get_session),
    transport: BaseEmailProvider = Depends(get_transport),
):
    """Dispatch everything that is due now."""
    result = await sweep(db, transport)
    return SweepResponse(**result.as_dict())


@router.post("/notifications/reconcile/{user_id}", response_model=ReconcileResponse)
async def run_reconcile(
    user_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Re-analyze one user and queue anything new."""
    result = await reconcile(db, user_id)
    return ReconcileResponse(scheduled_count=result.scheduled_count, skipped=result.skipped)


@router.post("/notifications/cleanup", response_model=CleanupResponse)
async def run_cleanup(db: AsyncSession = Depends(get_session)):
    """Delete finished notifications and old log rows past retention."""
    result = await cleanup(db)
    return CleanupResponse(notifications=result.notifications, logs=result.logs)


@router.post("/quota/{user_id}/sync-tier")
async def run_sync_tier(
    user_id: int,
    db: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    """Mirror the user's billing tier onto their quota record after a billing change."""
    tier = await sync_tier(db, user_id)
    return {"user_id": user_id, "tier": tier}
