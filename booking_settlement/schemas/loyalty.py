from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoyaltyAccountOut(BaseModel):
    user_id: str
    tier: str
    points: int
    lifetime_points: int
    next_tier: Optional[str] = None
    points_to_next_tier: Optional[int] = None


class PointsTransactionOut(BaseModel):
    id: str
    type: str
    amount: int
    reason: str
    related_booking_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    expired: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class RedemptionRequest(BaseModel):
    """Body of POST /loyalty/redemptions."""

    points: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)
    idempotency_key: Optional[str] = Field(None, max_length=128)
