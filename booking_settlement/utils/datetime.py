"""UTC and booking-window datetime utilities."""

from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Naive datetime at 00:00 of the given day (booking windows are wall-clock)."""
    return datetime.combine(day, time.min)


def at_time(day: date, clock: time) -> datetime:
    return datetime.combine(day, clock.replace(tzinfo=None))


def whole_days(start: datetime, end: datetime) -> int:
    """
    Number of started days between two datetimes, rounding partial days up.

    A rental picked up at 10:00 and returned at 11:00 two days later counts
    as three days.
    """
    delta = end - start
    days = delta.days
    if delta - timedelta(days=days) > timedelta(0):
        days += 1
    return days
