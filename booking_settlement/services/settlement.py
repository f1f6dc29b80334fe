"""
Webhook settlement: turns verified provider events into booking and referral
transitions and loyalty credits.

Booking state machine driven from here::

    pending   --payment succeeded / partner confirmed-->  confirmed (+ loyalty, once)
    pending   --payment failed------------------------>  pending, payment_status=failed
    pending   --intent canceled / partner cancelled--->  cancelled
    confirmed --partner cancelled--------------------->  cancelled
    confirmed --refund-------------------------------->  refunded

Partner events are addressed to a referral (``services/referrals.py``), which
carries the commission; a local booking linked to the referral follows the
machine above.

Every transition is a guarded update (``WHERE status IN (...)``) and is
committed in the same transaction as the ``webhook_events`` row, so a
redelivered or concurrently delivered event is applied at most once. Loyalty
is credited after that commit; a loyalty failure is logged and counted but
never undoes the confirmation.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

import pydantic
import stripe
import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from booking_settlement.config import (
    CLAWBACK_POINTS_ON_REFUND,
    PARTNER_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_SECRET,
    WEBHOOK_TOLERANCE_SECONDS,
)
from booking_settlement.db.readers.bookings import get_booking, get_booking_by_payment_intent
from booking_settlement.db.readers.referrals import get_referral
from booking_settlement.db.readers.webhook_events import get_webhook_event
from booking_settlement.db.writers.bookings import transition_booking
from booking_settlement.db.writers.webhook_events import record_webhook_event
from booking_settlement.errors import AuthenticationError, NotFoundError, ValidationError
from booking_settlement.metrics import loyalty_credit_failures, webhooks_processed
from booking_settlement.schemas.webhooks import (
    HANDLED_STRIPE_EVENTS,
    ChargeRefunded,
    PartnerBookingCancelled,
    PartnerBookingConfirmed,
    PartnerBookingData,
    PartnerBookingRefunded,
    PaymentIntentCanceled,
    PaymentIntentFailed,
    PaymentIntentSucceeded,
    partner_event_adapter,
    stripe_event_adapter,
)
from booking_settlement.services.loyalty import LoyaltyLedger
from booking_settlement.services.pricing import HUNDRED, to_minor_units, to_money
from booking_settlement.services.referrals import (
    cancel_referral,
    confirm_referral,
    refund_referral,
)
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

STRIPE = "stripe"
PARTNER = "partner"

NON_TERMINAL_STATUSES = ("pending", "confirmed")

# Referral outcomes that also settle a linked local booking
REFERRAL_CHANGED = ("confirmed", "cancelled", "refunded")


@dataclass(frozen=True)
class SettlementOutcome:
    provider: str
    event_id: str
    event_type: str
    outcome: str
    booking_id: Optional[str] = None
    referral_id: Optional[str] = None


# =============================================================================
# Signature verification
# =============================================================================


def verify_stripe_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
) -> None:
    """
    Verify a ``Stripe-Signature`` header against the raw request body.

    Raises:
        AuthenticationError: header missing, secret unset, bad signature or
            timestamp outside the tolerance
    """
    if not signature_header:
        raise AuthenticationError("Missing Stripe-Signature header")
    if not secret:
        logger.error("stripe_webhook_secret_missing")
        raise AuthenticationError("Webhook signature cannot be verified")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), signature_header, secret, tolerance
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
        raise AuthenticationError("Invalid webhook signature") from exc


def partner_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_partner_signature(payload: bytes, signature: Optional[str], secret: str) -> None:
    """
    Verify ``X-Partner-Signature``: hex HMAC-SHA256 of the raw body.

    Raises:
        AuthenticationError: header missing, secret unset or mismatch
    """
    if not signature:
        raise AuthenticationError("Missing X-Partner-Signature header")
    if not secret:
        logger.error("partner_webhook_secret_missing")
        raise AuthenticationError("Webhook signature cannot be verified")
    if not hmac.compare_digest(partner_signature(payload, secret), signature.strip().lower()):
        raise AuthenticationError("Invalid webhook signature")


def _load_json(payload: bytes) -> dict[str, Any]:
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise ValidationError("Invalid JSON payload", details={"body": "invalid json"}) from exc
    if not isinstance(data, dict):
        raise ValidationError("Invalid payload", details={"body": "expected an object"})
    return data


def _to_amount(minor: int) -> Decimal:
    return Decimal(minor) / HUNDRED


# =============================================================================
# Settlement
# =============================================================================


class SettlementHandler:
    """
    Applies provider events to bookings.

    Args:
        engine: SQLAlchemy engine
        ledger: Loyalty ledger credited on confirmation
        clawback_on_refund: Reverse earned points when a booking is refunded
    """

    def __init__(
        self,
        engine: Engine,
        ledger: LoyaltyLedger,
        clawback_on_refund: bool = CLAWBACK_POINTS_ON_REFUND,
        stripe_secret: str = STRIPE_WEBHOOK_SECRET,
        partner_secret: str = PARTNER_WEBHOOK_SECRET,
    ) -> None:
        self.engine = engine
        self.ledger = ledger
        self.clawback_on_refund = clawback_on_refund
        self.stripe_secret = stripe_secret
        self.partner_secret = partner_secret

    # -- ingress ---------------------------------------------------------------

    def handle_stripe(self, payload: bytes, signature_header: Optional[str]) -> SettlementOutcome:
        """
        Verify, parse and apply one Stripe event.

        Raises:
            AuthenticationError: signature check failed (nothing is read or written)
            ValidationError: payload does not match the event schema
            NotFoundError: no booking for the event; the provider will retry
        """
        try:
            verify_stripe_signature(payload, signature_header, self.stripe_secret)
        except AuthenticationError:
            webhooks_processed.labels(provider=STRIPE, event_type="unknown", outcome="rejected").inc()
            logger.warning("webhook_signature_invalid", provider=STRIPE)
            raise

        raw = _load_json(payload)
        event_id = str(raw.get("id") or "")
        event_type = str(raw.get("type") or "")
        logger.info("webhook_received", provider=STRIPE, event_id=event_id, event_type=event_type)

        if event_type not in HANDLED_STRIPE_EVENTS:
            logger.info("webhook_unsupported_event_type", provider=STRIPE, event_type=event_type)
            return self._finish(SettlementOutcome(STRIPE, event_id, event_type, "ignored"))

        try:
            event = stripe_event_adapter.validate_python(raw)
        except pydantic.ValidationError as exc:
            logger.warning("webhook_payload_invalid", provider=STRIPE, event_type=event_type)
            raise ValidationError.from_errors(exc.errors()) from exc

        if isinstance(event, PaymentIntentSucceeded):
            intent = event.data.object
            lookup = self._by_intent(intent.id, intent.metadata)
            return self._apply(
                STRIPE,
                event.id,
                event.type,
                lookup,
                self._confirm(received_minor=intent.amount_received or intent.amount),
            )
        if isinstance(event, PaymentIntentFailed):
            intent = event.data.object
            return self._apply(
                STRIPE, event.id, event.type, self._by_intent(intent.id, intent.metadata), self._fail
            )
        if isinstance(event, PaymentIntentCanceled):
            intent = event.data.object
            return self._apply(
                STRIPE, event.id, event.type, self._by_intent(intent.id, intent.metadata), self._cancel
            )

        assert isinstance(event, ChargeRefunded)
        charge = event.data.object
        lookup = self._by_intent(charge.payment_intent, charge.metadata)
        if not charge.refunded:
            logger.info(
                "partial_refund_ignored",
                charge_id=charge.id,
                payment_intent_id=charge.payment_intent,
                amount_refunded=charge.amount_refunded,
            )
            return self._apply(STRIPE, event.id, event.type, lookup, self._note("partial_refund"))
        return self._apply(STRIPE, event.id, event.type, lookup, self._refund)

    def handle_partner(self, payload: bytes, signature: Optional[str]) -> SettlementOutcome:
        """
        Verify, parse and apply one travel partner event to its referral.

        The referral is found by ``referralId``. Partner events carry no event
        id; ``<referralId>:<event>:<bookingReference>`` is used instead, so
        each kind of event is applied once per partner booking. When the
        referral is linked to a local booking, that booking is settled in the
        same transaction.

        Raises:
            AuthenticationError: signature check failed (nothing is read or written)
            ValidationError: payload does not match the event schema
            NotFoundError: unknown referral; the partner will retry
        """
        try:
            verify_partner_signature(payload, signature, self.partner_secret)
        except AuthenticationError:
            webhooks_processed.labels(provider=PARTNER, event_type="unknown", outcome="rejected").inc()
            logger.warning("webhook_signature_invalid", provider=PARTNER)
            raise

        raw = _load_json(payload)
        try:
            event = partner_event_adapter.validate_python(raw)
        except pydantic.ValidationError as exc:
            logger.warning("webhook_payload_invalid", provider=PARTNER, event_type=raw.get("event"))
            raise ValidationError.from_errors(exc.errors()) from exc

        data = event.data
        event_id = f"{data.referral_id}:{event.event}:{data.booking_reference}"
        total_minor = to_minor_units(to_money(data.total_amount), data.currency)
        logger.info(
            "webhook_received",
            provider=PARTNER,
            event_id=event_id,
            event_type=event.event,
            referral_id=data.referral_id,
            booking_reference=data.booking_reference,
        )

        if isinstance(event, PartnerBookingConfirmed):
            referral_action = self._confirm_referral(data, total_minor)
            booking_action = self._confirm(total_minor, external_reference=data.booking_reference)
        elif isinstance(event, PartnerBookingCancelled):
            referral_action, booking_action = cancel_referral, self._cancel
        else:
            assert isinstance(event, PartnerBookingRefunded)
            referral_action, booking_action = refund_referral, self._refund

        return self._apply_referral(
            event_id, event.event, data.referral_id, referral_action, booking_action
        )

    # -- lookups ---------------------------------------------------------------

    @staticmethod
    def _by_intent(
        payment_intent_id: Optional[str], metadata: dict[str, str]
    ) -> Callable[[Connection], Optional[Any]]:
        def lookup(conn: Connection) -> Optional[Any]:
            booking = None
            if payment_intent_id:
                booking = get_booking_by_payment_intent(conn, payment_intent_id)
            if booking is None and metadata.get("booking_id"):
                booking = get_booking(conn, metadata["booking_id"])
            return booking

        return lookup

    # -- core ------------------------------------------------------------------

    def _apply(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        lookup: Callable[[Connection], Optional[Any]],
        action: Callable[[Connection, Any], str],
    ) -> SettlementOutcome:
        try:
            with self.engine.begin() as conn:
                if get_webhook_event(conn, event_id) is not None:
                    logger.info("webhook_duplicate", provider=provider, event_id=event_id)
                    return self._finish(SettlementOutcome(provider, event_id, event_type, "duplicate"))

                booking = lookup(conn)
                if booking is None:
                    webhooks_processed.labels(
                        provider=provider, event_type=event_type, outcome="not_found"
                    ).inc()
                    logger.error(
                        "webhook_booking_not_found",
                        provider=provider,
                        event_id=event_id,
                        event_type=event_type,
                    )
                    raise NotFoundError("Booking not found for event", details={"event_id": event_id})

                outcome = action(conn, booking)
                record_webhook_event(conn, event_id, provider, event_type, booking.id, outcome)
        except IntegrityError:
            # The same event id was recorded by a concurrent delivery
            logger.info("webhook_duplicate", provider=provider, event_id=event_id)
            return self._finish(SettlementOutcome(provider, event_id, event_type, "duplicate"))

        self._settle_loyalty(booking, outcome)
        return self._finish(SettlementOutcome(provider, event_id, event_type, outcome, booking.id))

    def _apply_referral(
        self,
        event_id: str,
        event_type: str,
        referral_id: str,
        referral_action: Callable[[Connection, Any], str],
        booking_action: Callable[[Connection, Any], str],
    ) -> SettlementOutcome:
        booking = None
        booking_outcome = None
        try:
            with self.engine.begin() as conn:
                if get_webhook_event(conn, event_id) is not None:
                    logger.info("webhook_duplicate", provider=PARTNER, event_id=event_id)
                    return self._finish(SettlementOutcome(PARTNER, event_id, event_type, "duplicate"))

                referral = get_referral(conn, referral_id, lock=True)
                if referral is None:
                    webhooks_processed.labels(
                        provider=PARTNER, event_type=event_type, outcome="not_found"
                    ).inc()
                    logger.error(
                        "webhook_referral_not_found",
                        provider=PARTNER,
                        event_id=event_id,
                        referral_id=referral_id,
                    )
                    raise NotFoundError(
                        "Referral not found for event", details={"referral_id": referral_id}
                    )

                outcome = referral_action(conn, referral)
                if referral.booking_id and outcome in REFERRAL_CHANGED:
                    booking = get_booking(conn, referral.booking_id)
                    if booking is not None:
                        booking_outcome = booking_action(conn, booking)
                        logger.info(
                            "partner_booking_settled",
                            referral_id=referral.id,
                            booking_id=booking.id,
                            outcome=booking_outcome,
                        )
                record_webhook_event(
                    conn, event_id, PARTNER, event_type, referral.booking_id, outcome
                )
        except IntegrityError:
            # The same event was recorded by a concurrent delivery
            logger.info("webhook_duplicate", provider=PARTNER, event_id=event_id)
            return self._finish(SettlementOutcome(PARTNER, event_id, event_type, "duplicate"))

        if booking is not None and booking_outcome is not None:
            self._settle_loyalty(booking, booking_outcome)

        return self._finish(
            SettlementOutcome(
                PARTNER, event_id, event_type, outcome, referral.booking_id, referral.id
            )
        )

    def _finish(self, result: SettlementOutcome) -> SettlementOutcome:
        webhooks_processed.labels(
            provider=result.provider, event_type=result.event_type, outcome=result.outcome
        ).inc()
        logger.info(
            "webhook_processed",
            provider=result.provider,
            event_id=result.event_id,
            event_type=result.event_type,
            outcome=result.outcome,
            booking_id=result.booking_id,
            referral_id=result.referral_id,
        )
        return result

    # -- actions ---------------------------------------------------------------

    def _confirm(
        self, received_minor: int, external_reference: Optional[str] = None
    ) -> Callable[[Connection, Any], str]:
        def action(conn: Connection, booking: Any) -> str:
            if booking.status == "confirmed":
                return "already_confirmed"
            if booking.status == "cancelled":
                logger.error(
                    "settlement_after_expiry",
                    booking_id=booking.id,
                    payment_intent_id=booking.payment_intent_id,
                    amount_minor=received_minor,
                    user_id=booking.user_id,
                )
                return "settlement_after_expiry"
            if booking.status != "pending":
                return "ignored"

            if received_minor != booking.amount_minor:
                logger.warning(
                    "settlement_amount_mismatch",
                    booking_id=booking.id,
                    expected_minor=booking.amount_minor,
                    received_minor=received_minor,
                )

            extra: dict[str, Any] = {"confirmed_at": utc_now()}
            if external_reference:
                extra["external_reference"] = external_reference
            won = transition_booking(
                conn,
                booking.id,
                ("pending",),
                status="confirmed",
                payment_status="completed",
                **extra,
            )
            return "confirmed" if won else "already_confirmed"

        return action

    @staticmethod
    def _confirm_referral(
        data: PartnerBookingData, total_minor: int
    ) -> Callable[[Connection, Any], str]:
        def action(conn: Connection, referral: Any) -> str:
            return confirm_referral(
                conn,
                referral,
                booking_reference=data.booking_reference,
                partner_booking_id=data.partner_booking_id,
                total_minor=total_minor,
                currency=data.currency,
            )

        return action

    def _fail(self, conn: Connection, booking: Any) -> str:
        if booking.status != "pending":
            return "ignored"
        transition_booking(conn, booking.id, ("pending",), payment_status="failed")
        logger.info("booking_payment_failed", booking_id=booking.id, user_id=booking.user_id)
        return "payment_failed"

    def _cancel(self, conn: Connection, booking: Any) -> str:
        won = transition_booking(
            conn, booking.id, NON_TERMINAL_STATUSES, status="cancelled", cancelled_at=utc_now()
        )
        if not won:
            return "ignored"
        logger.info("booking_cancelled", booking_id=booking.id, previous_status=booking.status)
        return "cancelled"

    def _refund(self, conn: Connection, booking: Any) -> str:
        won = transition_booking(
            conn, booking.id, ("confirmed",), status="refunded", payment_status="refunded"
        )
        if not won:
            return "ignored"
        logger.info("booking_refunded", booking_id=booking.id, user_id=booking.user_id)
        return "refunded"

    @staticmethod
    def _note(outcome: str) -> Callable[[Connection, Any], str]:
        def action(conn: Connection, booking: Any) -> str:
            return outcome

        return action

    # -- loyalty ---------------------------------------------------------------

    def _settle_loyalty(self, booking: Any, outcome: str) -> None:
        if outcome == "confirmed":
            self._credit_loyalty(booking)
        elif outcome == "refunded" and self.clawback_on_refund:
            self._clawback_loyalty(booking)

    def _credit_loyalty(self, booking: Any) -> None:
        try:
            self.ledger.credit_for_booking(
                self.engine,
                user_id=booking.user_id,
                vertical=booking.vertical,
                settled_amount=_to_amount(booking.amount_minor),
                booking_id=booking.id,
            )
        except Exception as e:
            loyalty_credit_failures.inc()
            logger.error(
                "loyalty_credit_failed",
                booking_id=booking.id,
                user_id=booking.user_id,
                error=str(e),
            )

    def _clawback_loyalty(self, booking: Any) -> None:
        try:
            self.ledger.clawback_for_booking(self.engine, booking.id)
        except Exception as e:
            loyalty_credit_failures.inc()
            logger.error(
                "loyalty_clawback_failed",
                booking_id=booking.id,
                user_id=booking.user_id,
                error=str(e),
            )
