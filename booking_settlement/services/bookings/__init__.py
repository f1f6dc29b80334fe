from booking_settlement.services.bookings.core import (
    HANDLERS,
    BookingResult,
    create_booking,
    get_booking,
    list_user_bookings,
)

__all__ = ["HANDLERS", "BookingResult", "create_booking", "get_booking", "list_user_bookings"]
