from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from booking_settlement.config import SCHEMA
from booking_settlement.models.base import Base


class WebhookEvent(Base):
    """
    Record of a processed provider event, keyed by the provider's event id.

    A redelivered event with a known id is acknowledged without re-running any
    side effect.
    """

    __tablename__ = "webhook_events"
    __table_args__ = {"schema": SCHEMA}

    event_id = Column(String(255), primary_key=True)
    provider = Column(String(32), nullable=False)
    event_type = Column(String(64), nullable=False)
    booking_id = Column(String(36), nullable=True, index=True)
    outcome = Column(String(32), nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
