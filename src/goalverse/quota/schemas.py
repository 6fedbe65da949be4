"""Pydantic schemas for quota endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ConsumeRequest(BaseModel):
    cost: int = Field(1, ge=1, le=100)


class QuotaViewResponse(BaseModel):
    daily_count: int
    daily_limit: int
    weekly_count: int
    weekly_limit: int
    tier: Literal["free", "premium"]
    remaining: int | None = None


class ConsumeResponse(BaseModel):
    allowed: bool
    reason: Literal["daily_limit", "weekly_limit"] | None = None
    view: QuotaViewResponse
