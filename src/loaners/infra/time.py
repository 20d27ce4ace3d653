"""Clock helpers. Timestamps are stored timezone-aware in UTC."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Checkout/check-in timestamp source."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Calendar day in UTC; reservation dates carry no time of day."""
    return utc_now().date()
