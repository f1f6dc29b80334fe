from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, select
from sqlalchemy.engine import Connection

from booking_settlement.models.loyalty import LoyaltyAccount, PointsTransaction


def get_account(conn: Connection, user_id: str, lock: bool = False) -> Optional[Any]:
    stmt = select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    return conn.execute(stmt).fetchone()


def get_transaction_by_key(conn: Connection, idempotency_key: str) -> Optional[Any]:
    return conn.execute(
        select(PointsTransaction).where(PointsTransaction.idempotency_key == idempotency_key)
    ).fetchone()


def list_transactions(conn: Connection, user_id: str, limit: int = 50) -> list[Any]:
    stmt = (
        select(PointsTransaction)
        .where(PointsTransaction.user_id == user_id)
        .order_by(PointsTransaction.created_at.desc())
        .limit(limit)
    )
    return list(conn.execute(stmt).fetchall())


def list_expirable_earnings(conn: Connection, now: datetime, limit: int = 1000) -> list[Any]:
    """
    Earn transactions past their ``expires_at`` that have not been expired yet.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        now (datetime): Cut-off instant.
        limit (int): Batch size.

    Returns:
        list[Row]: PointsTransaction rows, oldest first.
    """
    stmt = (
        select(PointsTransaction)
        .where(
            and_(
                PointsTransaction.type == "earn",
                PointsTransaction.expired.is_(False),
                PointsTransaction.expires_at.is_not(None),
                PointsTransaction.expires_at <= now,
            )
        )
        .order_by(PointsTransaction.created_at)
        .limit(limit)
    )
    return list(conn.execute(stmt).fetchall())


def get_transaction(conn: Connection, transaction_id: str) -> Optional[Any]:
    return conn.execute(
        select(PointsTransaction).where(PointsTransaction.id == transaction_id)
    ).fetchone()
