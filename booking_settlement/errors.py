"""
Error taxonomy for the booking, settlement and loyalty pipeline.

Every error carries the HTTP status it maps to and a stable machine-readable
code. Route handlers do not build error responses themselves; the exception
handler registered in ``main.py`` renders any ``SettlementError`` as::

    {"error": "<code>", "message": "<human readable>", "details": {...}}
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional


class SettlementError(Exception):
    """Base class for all domain errors raised by the service layer."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message, "details": self.details}


class ValidationError(SettlementError):
    """Malformed or out-of-range input. ``details`` maps field name to message."""

    status_code = 400
    error = "validation_error"

    @classmethod
    def from_errors(cls, errors: Iterable[Mapping[str, Any]]) -> "ValidationError":
        """Build from pydantic ``errors()`` output, keyed by dotted field path."""
        details: dict[str, Any] = {}
        for err in errors:
            loc = [str(part) for part in err.get("loc", ()) if part != "body"]
            details[".".join(loc) or "body"] = err.get("msg", "invalid")
        return cls("Invalid request", details=details)


class NotFoundError(SettlementError):
    status_code = 404
    error = "not_found"


class ResourceInactiveError(SettlementError):
    status_code = 400
    error = "resource_inactive"


class PolicyViolationError(SettlementError):
    """Business rule violated: capacity exceeded, stay too short, etc."""

    status_code = 400
    error = "policy_violation"


class ConflictError(SettlementError):
    """Requested window clashes with existing bookings or holds."""

    status_code = 409
    error = "conflict"


class AuthenticationError(SettlementError):
    """Webhook signature missing or invalid."""

    status_code = 401
    error = "unauthorized"


class PaymentGatewayError(SettlementError):
    """
    The payment processor rejected or failed the request.

    Raised before any booking is persisted, so the caller may retry.
    """

    status_code = 502
    error = "payment_failed"
    public_message = "Payment could not be processed, please retry"


class InconsistencyError(SettlementError):
    """
    A payment intent exists at the processor but the booking was not stored.

    Needs manual reconciliation; never retried automatically.
    """

    status_code = 500
    error = "inconsistent_state"
