import logging

from booking_settlement.db.engine import engine
from booking_settlement.logging_config import setup_logging
from booking_settlement.services.expiry import expire_abandoned_bookings
from booking_settlement.services.loyalty import LoyaltyLedger
from booking_settlement.services.payments import StripePaymentGateway

setup_logging()
logger = logging.getLogger(__name__)


def main() -> None:
    """
    Cron entry point: cancel abandoned pending bookings, delete expired holds
    and expire loyalty points past their expiry date.
    """
    try:
        bookings = expire_abandoned_bookings(engine, StripePaymentGateway())
        points = LoyaltyLedger().expire_points(engine)
        logger.info("Expiry sweep finished: bookings=%s points=%s", bookings, points)
    except Exception:
        logger.exception("Expiry sweep failed")
        raise


if __name__ == "__main__":
    main()
