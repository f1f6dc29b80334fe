"""Booking creation and lookup routes for all verticals."""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.engine import Engine

from booking_settlement.dependencies import get_db_engine, get_payment_gateway, get_user_id
from booking_settlement.schemas.bookings import (
    BookingCreatedOut,
    BookingOut,
    CarRentalRequest,
    HotelBookingRequest,
    PaymentIntentOut,
    TourBookingRequest,
    TransferBookingRequest,
)
from booking_settlement.schemas.resources import Vertical
from booking_settlement.services import bookings as booking_service
from booking_settlement.services.payments import PaymentGateway

logger = structlog.get_logger(__name__)
router = APIRouter()


def _created(result: booking_service.BookingResult) -> BookingCreatedOut:
    return BookingCreatedOut(
        booking=BookingOut.model_validate(result.booking),
        payment_intent=PaymentIntentOut(
            client_secret=result.payment_intent.client_secret,
            amount=result.total_price,
            currency=result.payment_intent.currency,
        ),
    )


def _create(
    vertical: str, payload: Any, user_id: str, engine: Engine, gateway: PaymentGateway
) -> BookingCreatedOut:
    result = booking_service.create_booking(engine, gateway, vertical, payload, user_id)
    return _created(result)


@router.post(
    "/hotels/bookings", status_code=status.HTTP_201_CREATED, response_model=BookingCreatedOut
)
def create_hotel_booking(
    payload: HotelBookingRequest,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingCreatedOut:
    """
    Book a hotel room.

    Returns the pending booking and the payment intent the client must
    confirm. The booking is confirmed later by the payment webhook.
    """
    return _create("hotel", payload, user_id, engine, gateway)


@router.post("/cars/rentals", status_code=status.HTTP_201_CREATED, response_model=BookingCreatedOut)
def create_car_rental(
    payload: CarRentalRequest,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingCreatedOut:
    return _create("car", payload, user_id, engine, gateway)


@router.post(
    "/tours/bookings", status_code=status.HTTP_201_CREATED, response_model=BookingCreatedOut
)
def create_tour_booking(
    payload: TourBookingRequest,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingCreatedOut:
    return _create("tour", payload, user_id, engine, gateway)


@router.post(
    "/transfers/bookings", status_code=status.HTTP_201_CREATED, response_model=BookingCreatedOut
)
def create_transfer_booking(
    payload: TransferBookingRequest,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingCreatedOut:
    return _create("transfer", payload, user_id, engine, gateway)


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(
    booking_id: str,
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
) -> BookingOut:
    """Fetch one of the caller's bookings; other users' bookings are 404."""
    booking = booking_service.get_booking(engine, booking_id, user_id=user_id)
    return BookingOut.model_validate(booking)


@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(
    vertical: Optional[Vertical] = Query(None, description="Filter by vertical"),
    user_id: str = Depends(get_user_id),
    engine: Engine = Depends(get_db_engine),
) -> list[BookingOut]:
    rows = booking_service.list_user_bookings(engine, user_id, vertical)
    return [BookingOut.model_validate(row) for row in rows]
