"""
Webhook receivers for the payment processor and travel partners.

Both endpoints read the raw body (signatures are computed over the exact
bytes received) and hand it to the settlement handler in the threadpool.
Errors are rendered by the ``SettlementError`` handler:

- 401 signature missing or invalid, nothing changed
- 400 payload does not match the event schema
- 404 no booking or referral for the event; the provider retries later
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from booking_settlement.dependencies import get_settlement_handler
from booking_settlement.schemas.webhooks import WebhookAck
from booking_settlement.services.settlement import SettlementHandler

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/payments", response_model=WebhookAck, response_model_exclude_none=True)
async def receive_payment_webhook(
    request: Request,
    handler: SettlementHandler = Depends(get_settlement_handler),
) -> WebhookAck:
    """
    Handle Stripe events.

    Supported event types:
    - payment_intent.succeeded
    - payment_intent.payment_failed
    - payment_intent.canceled
    - charge.refunded

    Other event types are acknowledged with 200 and ignored.
    """
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    result = await run_in_threadpool(handler.handle_stripe, payload, signature)
    return WebhookAck(event_id=result.event_id, outcome=result.outcome)


@router.post("/partners", response_model=WebhookAck, response_model_exclude_none=True)
async def receive_partner_webhook(
    request: Request,
    handler: SettlementHandler = Depends(get_settlement_handler),
) -> WebhookAck:
    """
    Handle travel partner booking events for a referral.

    Expected payload structure:
        {
            "event": "booking.confirmed",
            "timestamp": "2024-05-01T10:00:00Z",
            "data": {
                "bookingId": "<partner booking id>",
                "referralId": "<referral id from POST /referrals>",
                "bookingReference": "TRP-123",
                "status": "confirmed",
                "totalAmount": 330.0,
                "currency": "USD"
            }
        }

    Authentication: ``X-Partner-Signature`` = hex HMAC-SHA256 of the raw body.
    """
    payload = await request.body()
    signature = request.headers.get("X-Partner-Signature")

    result = await run_in_threadpool(handler.handle_partner, payload, signature)
    return WebhookAck(
        event_id=result.event_id, outcome=result.outcome, referral_id=result.referral_id
    )


@router.get("/partners")
def partner_webhook_status() -> JSONResponse:
    """Liveness check partners call when registering the webhook URL."""
    return JSONResponse(content={"status": "ok", "service": "partner-webhooks"})
