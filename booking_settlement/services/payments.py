"""
Payment intent gateway.

The booking service only depends on the ``PaymentGateway`` protocol; the
Stripe implementation is the production one and tests inject a fake through
``app.dependency_overrides``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import stripe
import structlog

from booking_settlement.config import STRIPE_SECRET_KEY
from booking_settlement.errors import PaymentGatewayError
from booking_settlement.metrics import payment_intent_failures, payment_intent_latency

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    amount: int
    currency: str


class PaymentGateway(Protocol):
    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntent: ...

    def cancel_payment_intent(self, payment_intent_id: str) -> None: ...


def _user_message(exc: Any) -> str:
    return getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__


class StripePaymentGateway:
    """
    Payment gateway backed by Stripe PaymentIntents.

    Every Stripe SDK error is mapped to ``PaymentGatewayError``; the original
    exception is kept as ``__cause__`` and logged, never shown to clients.
    """

    def __init__(self, api_key: str = STRIPE_SECRET_KEY) -> None:
        self.api_key = api_key

    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntent:
        """
        Create a PaymentIntent for ``amount_minor`` in ``currency``.

        Args:
            amount_minor: Amount in minor units (cents)
            currency: ISO currency code, sent lower-cased
            metadata: Correlation data echoed back in webhook events
            idempotency_key: Stripe idempotency key, one per booking

        Returns:
            PaymentIntent: id, client secret, amount and currency

        Raises:
            PaymentGatewayError: Stripe rejected the request or was unreachable
        """
        try:
            with payment_intent_latency.time():
                intent = stripe.PaymentIntent.create(
                    api_key=self.api_key,
                    amount=amount_minor,
                    currency=currency.lower(),
                    metadata=metadata,
                    automatic_payment_methods={"enabled": True},
                    idempotency_key=idempotency_key,
                )
        except stripe.StripeError as exc:
            payment_intent_failures.inc()
            logger.error(
                "payment_intent_create_failed",
                amount_minor=amount_minor,
                currency=currency,
                booking_id=metadata.get("booking_id"),
                error=_user_message(exc),
            )
            raise PaymentGatewayError(
                PaymentGatewayError.public_message,
                details={"reason": getattr(exc, "code", None) or "processor_error"},
            ) from exc

        logger.info(
            "payment_intent_created",
            payment_intent_id=intent.id,
            amount_minor=amount_minor,
            booking_id=metadata.get("booking_id"),
        )
        return PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency.upper(),
        )

    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        """
        Cancel a PaymentIntent that will never be paid.

        An intent that already succeeded cannot be canceled; Stripe rejects
        the call and the error propagates so the booking is left alone.

        Raises:
            PaymentGatewayError: Stripe refused the cancellation
        """
        try:
            stripe.PaymentIntent.cancel(payment_intent_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.warning(
                "payment_intent_cancel_failed",
                payment_intent_id=payment_intent_id,
                error=_user_message(exc),
            )
            raise PaymentGatewayError(
                PaymentGatewayError.public_message, details={"payment_intent_id": payment_intent_id}
            ) from exc

        logger.info("payment_intent_cancelled", payment_intent_id=payment_intent_id)
