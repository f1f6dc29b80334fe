"""
Booking creation shared by all verticals.

Steps, each a hard precondition for the next:

1. Parse and validate the request (``ValidationError``)
2. Resolve the resource; it must exist, match the vertical and be active
3. Check party size and duration against the resource (``PolicyViolationError``)
4. Check availability and take a hold on the window (``ConflictError``)
5. Price the booking
6. Create the payment intent; on failure the hold is released
7. Store the pending booking and drop the hold in one transaction
8. Return the booking and what the client needs to pay

Nothing is written before step 4 and the hold is the only thing written
before step 7, so every failure up to and including the payment intent leaves
no trace. A failure in step 7 does leave an orphaned intent at the processor;
it is logged, counted and surfaced as ``InconsistencyError``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import pydantic
import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from booking_settlement.db.readers.bookings import get_booking as read_booking
from booking_settlement.db.readers.bookings import list_user_bookings as read_user_bookings
from booking_settlement.db.readers.resources import get_resource
from booking_settlement.db.writers.bookings import insert_booking, release_hold
from booking_settlement.errors import (
    InconsistencyError,
    NotFoundError,
    PaymentGatewayError,
    ResourceInactiveError,
    SettlementError,
    ValidationError,
)
from booking_settlement.metrics import bookings_created, bookings_rejected, orphaned_payment_intents
from booking_settlement.services.availability import acquire_hold, drop_hold, validate_window
from booking_settlement.services.bookings.base import BookingHandler
from booking_settlement.services.bookings.car import CarRentalHandler
from booking_settlement.services.bookings.hotel import HotelBookingHandler
from booking_settlement.services.bookings.tour import TourBookingHandler
from booking_settlement.services.bookings.transfer import TransferBookingHandler
from booking_settlement.services.payments import PaymentGateway, PaymentIntent
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

HANDLERS: dict[str, BookingHandler] = {
    handler.vertical: handler
    for handler in (
        HotelBookingHandler(),
        CarRentalHandler(),
        TourBookingHandler(),
        TransferBookingHandler(),
    )
}


@dataclass(frozen=True)
class BookingResult:
    booking: Any
    payment_intent: PaymentIntent
    total_price: Decimal


def _parse_request(handler: BookingHandler, request: Any) -> Any:
    if isinstance(request, handler.request_model):
        return request
    try:
        return handler.request_model.model_validate(request)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_errors(exc.errors()) from exc


def _resolve_resource(engine: Engine, handler: BookingHandler, request: Any) -> Any:
    resource_id = handler.resource_id(request)
    with engine.connect() as conn:
        resource = get_resource(conn, resource_id)

    if resource is None or resource.vertical != handler.vertical:
        raise NotFoundError(
            f"{handler.vertical.capitalize()} resource {resource_id} not found",
            details={"resource_id": resource_id},
        )
    if not resource.is_active:
        raise ResourceInactiveError(
            f"Resource {resource_id} is not available for booking",
            details={"resource_id": resource_id},
        )
    handler.check_resource(request, resource)
    return resource


def create_booking(
    engine: Engine,
    gateway: PaymentGateway,
    vertical: str,
    request: Any,
    user_id: str,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Create a pending booking and its payment intent.

    Args:
        engine: SQLAlchemy engine
        gateway: Payment gateway used to open the intent
        vertical: hotel, car, tour or transfer
        request: Request model instance or raw dict for the vertical
        user_id: Authenticated user id
        now: Clock override for tests

    Returns:
        BookingResult: stored booking row, payment intent and total price

    Raises:
        ValidationError, NotFoundError, ResourceInactiveError,
        PolicyViolationError, ConflictError, PaymentGatewayError,
        InconsistencyError
    """
    handler = HANDLERS.get(vertical)
    if handler is None:
        raise ValidationError(f"Unknown vertical {vertical}", details={"vertical": "unknown"})

    try:
        return _create_booking(engine, gateway, handler, request, user_id, now or utc_now())
    except SettlementError as exc:
        bookings_rejected.labels(vertical=vertical, reason=exc.error).inc()
        raise


def _create_booking(
    engine: Engine,
    gateway: PaymentGateway,
    handler: BookingHandler,
    raw_request: Any,
    user_id: str,
    now: datetime,
) -> BookingResult:
    request = _parse_request(handler, raw_request)
    handler.validate(request, now)

    resource = _resolve_resource(engine, handler, request)

    window_start, window_end = handler.window(request, resource)
    validate_window(resource, window_start, window_end, now)
    handler.check_policy(request, resource, window_start, window_end)
    units = handler.units(request)

    booking_id = str(uuid.uuid4())
    acquire_hold(engine, booking_id, resource.id, window_start, window_end, units, now=now)

    metadata = {
        "booking_id": booking_id,
        "vertical": handler.vertical,
        "resource_id": resource.id,
        "user_id": user_id,
        "window_start": window_start.isoformat(),
        "window_end": window_end.isoformat(),
    }

    try:
        pricing = handler.price(request, resource, window_start, window_end)
        intent = gateway.create_payment_intent(
            amount_minor=pricing.amount_minor,
            currency=pricing.currency,
            metadata=metadata,
            idempotency_key=f"booking-{booking_id}",
        )
    except PaymentGatewayError:
        drop_hold(engine, booking_id)
        logger.warning(
            "booking_payment_intent_failed",
            booking_id=booking_id,
            resource_id=resource.id,
            user_id=user_id,
        )
        raise
    except Exception:
        drop_hold(engine, booking_id)
        raise

    row = {
        "id": booking_id,
        "vertical": handler.vertical,
        "resource_id": resource.id,
        "user_id": user_id,
        "window_start": window_start,
        "window_end": window_end,
        "units": units,
        "party": handler.party(request),
        "pricing": pricing.snapshot(),
        "amount_minor": pricing.amount_minor,
        "currency": pricing.currency,
        "payment_intent_id": intent.id,
        "payment_status": "pending",
        "status": "pending",
        "contact": handler.contact(request),
        "details": handler.details(request),
        "special_requests": handler.special_requests(request),
    }

    try:
        with engine.begin() as conn:
            insert_booking(conn, row)
            release_hold(conn, booking_id)
            booking = read_booking(conn, booking_id)
    except SQLAlchemyError as exc:
        orphaned_payment_intents.inc()
        logger.error(
            "booking_persist_failed_orphaned_intent",
            booking_id=booking_id,
            resource_id=resource.id,
            user_id=user_id,
            amount_minor=pricing.amount_minor,
            currency=pricing.currency,
            payment_intent_id=intent.id,
            error=str(exc),
        )
        raise InconsistencyError(
            "Booking could not be stored after payment was initiated",
            details={"booking_id": booking_id, "payment_intent_id": intent.id},
        ) from exc

    bookings_created.labels(vertical=handler.vertical).inc()
    logger.info(
        "booking_created",
        booking_id=booking_id,
        vertical=handler.vertical,
        resource_id=resource.id,
        user_id=user_id,
        total_price=str(pricing.total_price),
        currency=pricing.currency,
        payment_intent_id=intent.id,
    )
    return BookingResult(booking=booking, payment_intent=intent, total_price=pricing.total_price)


def get_booking(engine: Engine, booking_id: str, user_id: Optional[str] = None) -> Any:
    """
    Fetch one booking. When ``user_id`` is given, bookings of other users are
    reported as not found.
    """
    with engine.connect() as conn:
        booking = read_booking(conn, booking_id)
    if booking is None or (user_id is not None and booking.user_id != user_id):
        raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
    return booking


def list_user_bookings(engine: Engine, user_id: str, vertical: Optional[str] = None) -> list[Any]:
    with engine.connect() as conn:
        return read_user_bookings(conn, user_id, vertical)
