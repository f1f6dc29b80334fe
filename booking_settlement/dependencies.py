"""
FastAPI dependency injection providers.

Routes never import the engine, the payment gateway or the loyalty ledger
directly; they receive them through these providers so tests can swap them
with ``app.dependency_overrides``:

    >>> app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
    >>> app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway()
"""

from __future__ import annotations

import hmac
from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header
from sqlalchemy.engine import Engine

from booking_settlement.config import CRON_SECRET
from booking_settlement.db.engine import engine
from booking_settlement.errors import AuthenticationError
from booking_settlement.services.loyalty import DEFAULT_LOYALTY_CONFIG, LoyaltyLedger
from booking_settlement.services.payments import PaymentGateway, StripePaymentGateway
from booking_settlement.services.settlement import SettlementHandler


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide the database engine.

    Yields:
        Engine: SQLAlchemy database engine
    """
    yield engine


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway()


@lru_cache(maxsize=1)
def get_loyalty_ledger() -> LoyaltyLedger:
    return LoyaltyLedger(DEFAULT_LOYALTY_CONFIG)


def get_settlement_handler(
    db_engine: Engine = Depends(get_db_engine),
    ledger: LoyaltyLedger = Depends(get_loyalty_ledger),
) -> SettlementHandler:
    return SettlementHandler(db_engine, ledger)


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Authenticated user id, set by the upstream gateway in ``X-User-Id``.

    Raises:
        AuthenticationError: header missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Missing X-User-Id header")
    return x_user_id.strip()


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """
    Guard for maintenance endpoints: ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        AuthenticationError: secret not configured or header mismatch
    """
    if not CRON_SECRET or not authorization:
        raise AuthenticationError("Invalid maintenance credentials")
    expected = f"Bearer {CRON_SECRET}".encode("utf-8")
    if not hmac.compare_digest(authorization.encode("utf-8"), expected):
        raise AuthenticationError("Invalid maintenance credentials")
