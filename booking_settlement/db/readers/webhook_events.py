from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_settlement.models.webhook_events import WebhookEvent


def get_webhook_event(conn: Connection, event_id: str) -> Optional[Any]:
    return conn.execute(select(WebhookEvent).where(WebhookEvent.event_id == event_id)).fetchone()
