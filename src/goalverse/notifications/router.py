"""Notification API endpoints: 9 routes."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from goalverse.auth.dependencies import get_current_user
from goalverse.database import get_session
from goalverse.db.models import NotificationLog, ScheduledNotification, User
from goalverse.notifications.history import (
    get_engagement_stats,
    get_history,
    list_pending,
    record_engagement,
)
from goalverse.notifications.preferences import get_preferences, update_preferences
from goalverse.notifications.scheduler import cancel_pending, reconcile, schedule_custom
from goalverse.notifications.schemas import (
    CancelResponse,
    HistoryEntryResponse,
    HistoryResponse,
    NotificationType,
    PreferencesResponse,
    ReconcileResponse,
    ScheduledNotificationResponse,
    ScheduleRequest,
    ScheduleResponse,
    StatsResponse,
    UpdatePreferencesRequest,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


def scheduled_response(row: ScheduledNotification) -> ScheduledNotificationResponse:
    return ScheduledNotificationResponse(
        id=row.id,
        type=row.type,
        scheduled_for=row.scheduled_for,
        status=row.status,
        recurring=row.recurring,
        recurrence_pattern=row.recurrence_pattern,
        payload=row.payload or {},
    )


def history_response(entry: NotificationLog) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        id=entry.id,
        notification_id=entry.notification_id,
        type=entry.type,
        outcome=entry.outcome,
        detail=entry.detail,
        created_at=entry.created_at,
        opened_at=entry.opened_at,
        clicked_at=entry.clicked_at,
    )


@router.get("/preferences", response_model=PreferencesResponse)
async def read_preferences(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Current preferences merged over defaults."""
    return PreferencesResponse(**await get_preferences(db, user.id))


@router.put("/preferences", response_model=PreferencesResponse)
async def write_preferences(
    body: UpdatePreferencesRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Update preferences. Already queued notifications are re-checked when they come due."""
    validated = await update_preferences(db, user.id, body.preferences)
    await db.commit()
    return PreferencesResponse(**validated)


@router.get("/scheduled", response_model=list[ScheduledNotificationResponse])
async def scheduled(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Upcoming notifications, soonest first."""
    return [scheduled_response(row) for row in await list_pending(db, user.id)]


@router.post("/scheduled", response_model=ScheduleResponse, status_code=201)
async def schedule(
    body: ScheduleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Queue a notification for the current user. scheduled=false when one is already queued."""
    row = await schedule_custom(
        db,
        user.id,
        body.type,
        body.scheduled_for,
        payload=body.payload,
        recurring=body.recurring,
        recurrence_pattern=body.recurrence_pattern,
    )
    if row is None:
        return ScheduleResponse(scheduled=False)
    return ScheduleResponse(scheduled=True, notification=scheduled_response(row))


@router.delete("/scheduled", response_model=CancelResponse)
async def cancel(
    type: NotificationType | None = Query(None),  # noqa: A002
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Cancel pending notifications, all of them or one type."""
    return CancelResponse(cancelled=await cancel_pending(db, user.id, type))


@router.get("/history", response_model=HistoryResponse)
async def history(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Latest dispatch log entries."""
    entries = await get_history(db, user.id, limit)
    return HistoryResponse(history=[history_response(e) for e in entries])


@router.get("/stats", response_model=StatsResponse)
async def stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Open and click rates over sent notifications."""
    return StatsResponse(**await get_engagement_stats(db, user.id))


@router.post("/history/{log_id}/{kind}", response_model=HistoryEntryResponse)
async def engagement(
    log_id: int,
    kind: Literal["opened", "clicked"],
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Record an open or click from the tracking pixel or link redirect."""
    entry = await record_engagement(db, log_id, user.id, kind)
    if entry is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return history_response(entry)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_self(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Re-analyze the current user and queue anything new."""
    result = await reconcile(db, user.id)
    return ReconcileResponse(scheduled_count=result.scheduled_count, skipped=result.skipped)
