from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from booking_settlement.config import SCHEMA
from booking_settlement.models.base import Base, JSONType


class Resource(Base):
    """
    ORM model for anything that can be booked: hotel room, rental vehicle,
    tour or transfer vehicle.

    Vertical-specific attributes are kept as JSON documents and parsed into
    typed schemas by ``booking_settlement.schemas.resources``:

    - capacity: party limits (adults/children, passengers/luggage, ...)
    - rate_card: prices, fees, surcharges and the currency
    - rules: stay limits and advance-booking limits

    ``units`` is how many overlapping bookings the resource can absorb: the
    number of identical rooms, 1 for a vehicle, the max group size for a tour.
    """

    __tablename__ = "resources"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(64), primary_key=True)
    vertical = Column(String(16), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    parent_id = Column(String(64), nullable=True, index=True)  # property id for hotel rooms
    is_active = Column(Boolean, nullable=False, default=True)
    units = Column(Integer, nullable=False, default=1)
    capacity = Column(JSONType, nullable=False, default=dict)
    rate_card = Column(JSONType, nullable=False)
    rules = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
