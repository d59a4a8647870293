"""Month-close finalization rule for stored rates."""

from __future__ import annotations

import calendar
from datetime import date, timezone

from networth_tracker.core.models import CurrencyRate


def last_day_of_month(year: int, month: int) -> date:
    """Last calendar day of (year, month), leap years included."""
    return date(year, month, calendar.monthrange(year, month)[1])


def is_finalized(existing: CurrencyRate | None, year: int, month: int) -> bool:
    """True if ``existing`` was written after (year, month) had closed.

    A rate recorded once the month is over is the closing value and is
    never overwritten by sync. Dates compare in UTC.
    """
    if existing is None:
        return False
    ts = existing.timestamp
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    written = ts.date()
    return written > last_day_of_month(year, month)


def invert_rate(value: float) -> float:
    """Turn a foreign-per-home quote into a foreign→home multiplier.

    Zero stays zero.
    """
    if value == 0:
        return 0.0
    return 1.0 / value
