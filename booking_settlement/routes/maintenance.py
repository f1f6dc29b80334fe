"""
Scheduled maintenance endpoints, called by an external cron with
``Authorization: Bearer <CRON_SECRET>``.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from booking_settlement.dependencies import (
    get_db_engine,
    get_loyalty_ledger,
    get_payment_gateway,
    require_cron_secret,
)
from booking_settlement.services.expiry import expire_abandoned_bookings
from booking_settlement.services.loyalty import LoyaltyLedger
from booking_settlement.services.payments import PaymentGateway

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/expire-bookings")
def expire_bookings(
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, int]:
    """Cancel abandoned pending bookings and delete expired holds."""
    return expire_abandoned_bookings(engine, gateway)


@router.post("/expire-points")
def expire_points(
    engine: Engine = Depends(get_db_engine),
    ledger: LoyaltyLedger = Depends(get_loyalty_ledger),
) -> dict[str, int]:
    """Expire loyalty points past their expiry date."""
    return ledger.expire_points(engine)
