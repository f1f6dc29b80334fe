from typing import Any, Iterable

from sqlalchemy import and_, insert, update
from sqlalchemy.engine import Connection

from booking_settlement.models.referrals import PartnerReferral
from booking_settlement.utils.datetime import utc_now


def insert_referral(conn: Connection, row: dict[str, Any]) -> None:
    now = utc_now()
    conn.execute(insert(PartnerReferral).values({**row, "created_at": now, "updated_at": now}))


def transition_referral(
    conn: Connection,
    referral_id: str,
    from_statuses: Iterable[str],
    **values: Any,
) -> bool:
    """
    Update a referral only while its ``booking_status`` is one of ``from_statuses``.

    Returns:
        bool: True if this call changed the row
    """
    result = conn.execute(
        update(PartnerReferral)
        .where(
            and_(
                PartnerReferral.id == referral_id,
                PartnerReferral.booking_status.in_(tuple(from_statuses)),
            )
        )
        .values({"updated_at": utc_now(), **values})
    )
    return result.rowcount == 1
