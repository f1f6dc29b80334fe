"""Loyalty account, history and redemption routes."""

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.engine import Engine

from booking_settlement.dependencies import get_db_engine, get_loyalty_ledger, get_user_id
from booking_settlement.schemas.loyalty import (
    LoyaltyAccountOut,
    PointsTransactionOut,
    RedemptionRequest,
)
from booking_settlement.services.loyalty import LoyaltyLedger

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/account", response_model=LoyaltyAccountOut)
def get_account(
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    ledger: LoyaltyLedger = Depends(get_loyalty_ledger),
) -> LoyaltyAccountOut:
    return LoyaltyAccountOut(**ledger.get_account(engine, user_id))


@router.get("/transactions", response_model=list[PointsTransactionOut])
def list_transactions(
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    ledger: LoyaltyLedger = Depends(get_loyalty_ledger),
) -> list[PointsTransactionOut]:
    rows = ledger.list_transactions(engine, user_id, limit)
    return [PointsTransactionOut.model_validate(row) for row in rows]


@router.post(
    "/redemptions", status_code=status.HTTP_201_CREATED, response_model=PointsTransactionOut
)
def redeem(
    payload: RedemptionRequest,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    ledger: LoyaltyLedger = Depends(get_loyalty_ledger),
) -> PointsTransactionOut:
    """
    Spend points. A client-supplied ``idempotency_key`` makes retries safe;
    it is scoped to the caller.
    """
    key = f"{user_id}:redeem:{payload.idempotency_key}" if payload.idempotency_key else None
    row = ledger.redeem_points(engine, user_id, payload.points, payload.reason, key)
    return PointsTransactionOut.model_validate(row)
