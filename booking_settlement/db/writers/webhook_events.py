from typing import Optional

from sqlalchemy import insert
from sqlalchemy.engine import Connection

from booking_settlement.models.webhook_events import WebhookEvent
from booking_settlement.utils.datetime import utc_now


def record_webhook_event(
    conn: Connection,
    event_id: str,
    provider: str,
    event_type: str,
    booking_id: Optional[str],
    outcome: str,
) -> None:
    """
    Store a processed event id.

    Raises:
        sqlalchemy.exc.IntegrityError: the event was already recorded by a
            concurrent delivery; the caller's transaction must roll back
    """
    conn.execute(
        insert(WebhookEvent).values(
            event_id=event_id,
            provider=provider,
            event_type=event_type,
            booking_id=booking_id,
            outcome=outcome,
            received_at=utc_now(),
        )
    )
