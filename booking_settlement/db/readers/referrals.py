from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_settlement.models.referrals import PartnerReferral


def get_referral(conn: Connection, referral_id: str, lock: bool = False) -> Optional[Any]:
    """
    Fetch a partner referral by id.

    Args:
        conn: Active database connection
        referral_id: Referral id
        lock: Take a row lock for the rest of the transaction. Serializes
            concurrent partner events for the same referral.

    Returns:
        Optional[Row]: the referral row or None
    """
    stmt = select(PartnerReferral).where(PartnerReferral.id == referral_id)
    if lock:
        stmt = stmt.with_for_update()
    return conn.execute(stmt).fetchone()


def list_user_referrals(
    conn: Connection, user_id: str, booking_status: Optional[str] = None
) -> list[Any]:
    stmt = select(PartnerReferral).where(PartnerReferral.user_id == user_id)
    if booking_status is not None:
        stmt = stmt.where(PartnerReferral.booking_status == booking_status)
    stmt = stmt.order_by(PartnerReferral.created_at.desc(), PartnerReferral.id)
    return list(conn.execute(stmt).fetchall())
