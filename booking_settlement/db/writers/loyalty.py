"""
Loyalty writers.

An account's balance only moves together with an appended transaction, so
``append_transaction`` and ``apply_balance_change`` are always called in the
same ``engine.begin()`` block by the ledger service.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from booking_settlement.models.loyalty import LoyaltyAccount, PointsTransaction
from booking_settlement.utils.datetime import utc_now


def create_account(conn: Connection, user_id: str, tier: str) -> None:
    now = utc_now()
    conn.execute(
        insert(LoyaltyAccount).values(
            user_id=user_id,
            tier=tier,
            points=0,
            lifetime_points=0,
            created_at=now,
            updated_at=now,
        )
    )


def append_transaction(
    conn: Connection,
    user_id: str,
    type_: str,
    amount: int,
    reason: str,
    related_booking_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Insert one PointsTransaction row.

    Raises:
        sqlalchemy.exc.IntegrityError: ``idempotency_key`` already used
    """
    row = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "type": type_,
        "amount": amount,
        "reason": reason,
        "related_booking_id": related_booking_id,
        "idempotency_key": idempotency_key,
        "expires_at": expires_at,
        "expired": False,
        "created_at": utc_now(),
    }
    conn.execute(insert(PointsTransaction).values(row))
    return row


def apply_balance_change(
    conn: Connection, user_id: str, points_delta: int, lifetime_delta: int, tier: str
) -> None:
    conn.execute(
        update(LoyaltyAccount)
        .where(LoyaltyAccount.user_id == user_id)
        .values(
            points=LoyaltyAccount.points + points_delta,
            lifetime_points=LoyaltyAccount.lifetime_points + lifetime_delta,
            tier=tier,
            updated_at=utc_now(),
        )
    )


def mark_expired(conn: Connection, transaction_id: str) -> bool:
    result = conn.execute(
        update(PointsTransaction)
        .where(PointsTransaction.id == transaction_id, PointsTransaction.expired.is_(False))
        .values(expired=True)
    )
    return result.rowcount == 1
