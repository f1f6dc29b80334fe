"""
Base class for per-vertical booking handlers.

A handler knows how to read one vertical's request: which resource it names,
which window it occupies, whether the party fits, and what it costs. The
orchestration (holds, payment intent, persistence) lives in ``core.py`` and
is the same for every vertical.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, ClassVar

from pydantic import BaseModel

from booking_settlement.errors import PolicyViolationError, ValidationError
from booking_settlement.schemas.resources import BookingRules
from booking_settlement.services.pricing import PricingBreakdown


class BookingHandler:
    vertical: ClassVar[str]
    request_model: ClassVar[type[BaseModel]]

    def resource_id(self, request: Any) -> str:
        raise NotImplementedError

    def validate(self, request: Any, now: datetime) -> None:
        """Field constraints the request schema cannot express on its own."""

    def check_resource(self, request: Any, resource: Any) -> None:
        """Extra checks that the resolved resource is the one the client meant."""

    def window(self, request: Any, resource: Any) -> tuple[datetime, datetime]:
        raise NotImplementedError

    def units(self, request: Any) -> int:
        return 1

    def check_policy(
        self, request: Any, resource: Any, window_start: datetime, window_end: datetime
    ) -> None:
        """Party against capacity and duration against stay limits."""

    def price(
        self, request: Any, resource: Any, window_start: datetime, window_end: datetime
    ) -> PricingBreakdown:
        raise NotImplementedError

    def party(self, request: Any) -> dict[str, Any]:
        raise NotImplementedError

    def contact(self, request: Any) -> dict[str, Any]:
        raise NotImplementedError

    def details(self, request: Any) -> dict[str, Any]:
        return {}

    def special_requests(self, request: Any) -> str | None:
        return getattr(request, "special_requests", None)


def rules_for(resource: Any) -> BookingRules:
    return BookingRules.model_validate(resource.rules or {})


def require_not_past(field: str, value: datetime, now: datetime) -> None:
    if value < now.replace(tzinfo=None):
        raise ValidationError("Date is in the past", details={field: "must not be in the past"})


def require_not_past_date(field: str, value: date, now: datetime) -> None:
    if value < now.date():
        raise ValidationError("Date is in the past", details={field: "must not be in the past"})


def check_stay_limits(rules: BookingRules, length: int, unit: str) -> None:
    """
    Enforce ``minimum_stay`` / ``maximum_stay`` for a duration in nights or days.

    Raises:
        PolicyViolationError: duration outside the resource's limits
    """
    if length < rules.minimum_stay:
        raise PolicyViolationError(
            f"Minimum stay is {rules.minimum_stay} {unit}",
            details={"minimum_stay": rules.minimum_stay, unit: length},
        )
    if rules.maximum_stay is not None and length > rules.maximum_stay:
        raise PolicyViolationError(
            f"Maximum stay is {rules.maximum_stay} {unit}",
            details={"maximum_stay": rules.maximum_stay, unit: length},
        )


def age_on(birth: date, day: date) -> int:
    return day.year - birth.year - ((day.month, day.day) < (birth.month, birth.day))
