"""
Loyalty ledger: points earned on settled bookings, redemptions, clawbacks and
expiry.

Earn formula for a settled booking::

    base  = floor(settled_amount * earn_rate[vertical])
    bonus = floor(base * (multiplier[tier] - 1))
    total = base + bonus

``tier`` is the account's tier before the credit. Earn transactions carry the
idempotency key ``"<booking_id>:points-earned"`` (unique in the database), so a
booking can never be credited twice no matter how often settlement runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from types import MappingProxyType
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from booking_settlement.db.readers import loyalty as readers
from booking_settlement.db.writers import loyalty as writers
from booking_settlement.errors import PolicyViolationError, ValidationError
from booking_settlement.metrics import loyalty_points_credited, loyalty_points_expired
from booking_settlement.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def _frozen(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class LoyaltyConfig:
    """
    Versioned loyalty tables. Instances are immutable; changing a rate means
    shipping a new config with a new ``version``.
    """

    version: str
    earn_rates: Mapping[str, Decimal]
    tier_thresholds: tuple[tuple[str, int], ...]
    tier_multipliers: Mapping[str, Decimal]
    points_lifetime: timedelta = field(default=timedelta(days=365))

    @property
    def base_tier(self) -> str:
        return self.tier_thresholds[0][0]

    def tier_for(self, lifetime_points: int) -> str:
        tier = self.base_tier
        for name, threshold in self.tier_thresholds:
            if lifetime_points >= threshold:
                tier = name
        return tier

    def next_tier(self, lifetime_points: int) -> Optional[tuple[str, int]]:
        """Next tier name and the lifetime points still needed, or None at the top."""
        for name, threshold in self.tier_thresholds:
            if lifetime_points < threshold:
                return name, threshold - lifetime_points
        return None

    def points_for(self, vertical: str, settled_amount: Decimal, tier: str) -> tuple[int, int]:
        """Return ``(base, bonus)`` points for a settled amount."""
        rate = self.earn_rates.get(vertical)
        if rate is None:
            raise ValidationError(f"No earn rate for vertical {vertical}", details={"vertical": vertical})

        base = int((Decimal(settled_amount) * rate).to_integral_value(rounding=ROUND_FLOOR))
        multiplier = self.tier_multipliers.get(tier, Decimal("1"))
        bonus = int((base * (multiplier - 1)).to_integral_value(rounding=ROUND_FLOOR))
        return base, bonus


DEFAULT_LOYALTY_CONFIG = LoyaltyConfig(
    version="2024-01",
    earn_rates=_frozen(
        {
            "hotel": Decimal("10"),
            "car": Decimal("8"),
            "tour": Decimal("12"),
            "transfer": Decimal("6"),
        }
    ),
    tier_thresholds=(
        ("bronze", 0),
        ("silver", 1000),
        ("gold", 5000),
        ("platinum", 15000),
        ("diamond", 50000),
    ),
    tier_multipliers=_frozen(
        {
            "bronze": Decimal("1.0"),
            "silver": Decimal("1.25"),
            "gold": Decimal("1.5"),
            "platinum": Decimal("1.75"),
            "diamond": Decimal("2.0"),
        }
    ),
)


def earn_key(booking_id: str) -> str:
    return f"{booking_id}:points-earned"


def clawback_key(booking_id: str) -> str:
    return f"{booking_id}:points-clawback"


class LoyaltyLedger:
    """
    Append-only points ledger with incrementally maintained balances.

    Every public method opens its own transaction on the engine it is given.
    The settlement handler relies on this: a failed credit never rolls back
    the booking confirmation that triggered it.
    """

    def __init__(self, config: LoyaltyConfig = DEFAULT_LOYALTY_CONFIG) -> None:
        self.config = config

    def _ensure_account(self, conn: Connection, user_id: str) -> Any:
        account = readers.get_account(conn, user_id, lock=True)
        if account is None:
            writers.create_account(conn, user_id, self.config.base_tier)
            account = readers.get_account(conn, user_id, lock=True)
        return account

    def credit_for_booking(
        self,
        engine: Engine,
        user_id: str,
        vertical: str,
        settled_amount: Decimal,
        booking_id: str,
    ) -> Any:
        """
        Credit points for a settled booking, exactly once.

        Args:
            engine: SQLAlchemy engine
            user_id: Booking owner
            vertical: Booking vertical, selects the earn rate
            settled_amount: Amount paid, in major currency units
            booking_id: Settled booking id

        Returns:
            Row: The earn transaction (the existing one on repeated calls)
        """
        key = earn_key(booking_id)
        try:
            return self._credit(engine, user_id, vertical, settled_amount, booking_id, key)
        except IntegrityError:
            # A concurrent credit or account creation won the race
            with engine.connect() as conn:
                existing = readers.get_transaction_by_key(conn, key)
            if existing is not None:
                return existing
            return self._credit(engine, user_id, vertical, settled_amount, booking_id, key)

    def _credit(
        self,
        engine: Engine,
        user_id: str,
        vertical: str,
        settled_amount: Decimal,
        booking_id: str,
        key: str,
    ) -> Any:
        with engine.begin() as conn:
            existing = readers.get_transaction_by_key(conn, key)
            if existing is not None:
                logger.info("loyalty_credit_duplicate", booking_id=booking_id, user_id=user_id)
                return existing

            account = self._ensure_account(conn, user_id)
            base, bonus = self.config.points_for(vertical, settled_amount, account.tier)
            total = base + bonus
            new_lifetime = account.lifetime_points + total

            row = writers.append_transaction(
                conn,
                user_id=user_id,
                type_="earn",
                amount=total,
                reason=f"Booking {booking_id} ({vertical})",
                related_booking_id=booking_id,
                idempotency_key=key,
                expires_at=utc_now() + self.config.points_lifetime,
            )
            writers.apply_balance_change(
                conn, user_id, total, total, self.config.tier_for(new_lifetime)
            )
            transaction = readers.get_transaction(conn, row["id"])

        loyalty_points_credited.labels(vertical=vertical).inc(total)
        logger.info(
            "loyalty_points_credited",
            booking_id=booking_id,
            user_id=user_id,
            vertical=vertical,
            base_points=base,
            bonus_points=bonus,
            tier=account.tier,
            config_version=self.config.version,
        )
        return transaction

    def clawback_for_booking(self, engine: Engine, booking_id: str) -> Optional[Any]:
        """
        Reverse the earn transaction of a refunded booking with an ``adjust``
        entry. Returns None when the booking never earned points.
        """
        key = clawback_key(booking_id)
        try:
            with engine.begin() as conn:
                existing = readers.get_transaction_by_key(conn, key)
                if existing is not None:
                    return existing

                earned = readers.get_transaction_by_key(conn, earn_key(booking_id))
                if earned is None:
                    return None

                account = self._ensure_account(conn, earned.user_id)
                new_lifetime = max(0, account.lifetime_points - earned.amount)
                row = writers.append_transaction(
                    conn,
                    user_id=earned.user_id,
                    type_="adjust",
                    amount=-earned.amount,
                    reason=f"Refund of booking {booking_id}",
                    related_booking_id=booking_id,
                    idempotency_key=key,
                )
                writers.apply_balance_change(
                    conn,
                    earned.user_id,
                    -earned.amount,
                    new_lifetime - account.lifetime_points,
                    self.config.tier_for(new_lifetime),
                )
                transaction = readers.get_transaction(conn, row["id"])
        except IntegrityError:
            with engine.connect() as conn:
                return readers.get_transaction_by_key(conn, key)

        logger.info(
            "loyalty_points_clawed_back",
            booking_id=booking_id,
            user_id=earned.user_id,
            points=earned.amount,
        )
        return transaction

    def redeem_points(
        self,
        engine: Engine,
        user_id: str,
        points: int,
        reason: str,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """
        Spend points from the balance. Lifetime points and tier are unchanged.

        Raises:
            ValidationError: points is not positive
            PolicyViolationError: balance too low
        """
        if points <= 0:
            raise ValidationError("Points must be positive", details={"points": "must be > 0"})

        with engine.begin() as conn:
            if idempotency_key:
                existing = readers.get_transaction_by_key(conn, idempotency_key)
                if existing is not None:
                    return existing

            account = readers.get_account(conn, user_id, lock=True)
            balance = account.points if account is not None else 0
            if balance < points:
                raise PolicyViolationError(
                    "Insufficient points",
                    details={"available": balance, "requested": points},
                )

            row = writers.append_transaction(
                conn,
                user_id=user_id,
                type_="redeem",
                amount=-points,
                reason=reason,
                idempotency_key=idempotency_key,
            )
            writers.apply_balance_change(conn, user_id, -points, 0, account.tier)
            transaction = readers.get_transaction(conn, row["id"])

        logger.info("loyalty_points_redeemed", user_id=user_id, points=points)
        return transaction

    def get_account(self, engine: Engine, user_id: str) -> dict[str, Any]:
        """Account summary; users without an account see an empty base-tier one."""
        with engine.connect() as conn:
            account = readers.get_account(conn, user_id)

        if account is None:
            summary = {
                "user_id": user_id,
                "tier": self.config.base_tier,
                "points": 0,
                "lifetime_points": 0,
            }
        else:
            summary = {
                "user_id": account.user_id,
                "tier": account.tier,
                "points": account.points,
                "lifetime_points": account.lifetime_points,
            }

        upcoming = self.config.next_tier(summary["lifetime_points"])
        summary["next_tier"] = upcoming[0] if upcoming else None
        summary["points_to_next_tier"] = upcoming[1] if upcoming else None
        return summary

    def list_transactions(self, engine: Engine, user_id: str, limit: int = 50) -> list[Any]:
        with engine.connect() as conn:
            return readers.list_transactions(conn, user_id, limit)

    def expire_points(self, engine: Engine, now: Optional[datetime] = None) -> dict[str, int]:
        """
        Expire earn transactions past ``expires_at``.

        Each one gets a matching ``expire`` transaction (never more than the
        current balance) and is flagged so later sweeps skip it. One failing
        transaction does not stop the sweep.

        Returns:
            dict: transactions expired, points removed and errors
        """
        current = now or utc_now()
        with engine.connect() as conn:
            due = readers.list_expirable_earnings(conn, current)

        expired_count = 0
        points_removed = 0
        errors = 0

        for earned in due:
            try:
                with engine.begin() as conn:
                    if not writers.mark_expired(conn, earned.id):
                        continue
                    account = readers.get_account(conn, earned.user_id, lock=True)
                    amount = min(earned.amount, account.points) if account is not None else 0
                    if amount > 0:
                        writers.append_transaction(
                            conn,
                            user_id=earned.user_id,
                            type_="expire",
                            amount=-amount,
                            reason=f"Points earned {earned.created_at:%Y-%m-%d} expired",
                            related_booking_id=earned.related_booking_id,
                            idempotency_key=f"{earned.id}:expired",
                        )
                        writers.apply_balance_change(conn, earned.user_id, -amount, 0, account.tier)
            except Exception as e:
                errors += 1
                logger.error(
                    "loyalty_points_expiry_failed",
                    transaction_id=earned.id,
                    user_id=earned.user_id,
                    error=str(e),
                )
                continue

            expired_count += 1
            points_removed += amount

        if points_removed:
            loyalty_points_expired.inc(points_removed)
        logger.info(
            "loyalty_points_expiry_completed",
            transactions=expired_count,
            points=points_removed,
            errors=errors,
        )
        return {"transactions": expired_count, "points": points_removed, "errors": errors}
