"""Business-day arithmetic with optional public holiday support.

Weekends (Saturday/Sunday) never count. Holidays are only skipped when the
caller asks for it; the calendar comes from the ``holidays`` package.
"""

from datetime import date, datetime, timedelta
from functools import lru_cache

import holidays

from formflow.core.config import settings


@lru_cache(maxsize=32)
def get_holidays(country: str, year: int) -> frozenset[date]:
    """Cache holiday sets per (country, year) for performance."""
    return frozenset(holidays.country_holidays(country, years=year).keys())


def is_business_day(
    dt: datetime | date,
    *,
    exclude_holidays: bool = False,
    country: str | None = None,
) -> bool:
    """Check if date is a business day (Mon-Fri, optionally not a holiday)."""
    if dt.weekday() >= 5:  # Weekend
        return False
    if exclude_holidays:
        day = dt.date() if isinstance(dt, datetime) else dt
        if day in get_holidays(country or settings.HOLIDAY_COUNTRY, day.year):
            return False
    return True


def add_business_days(
    start: datetime,
    days: int,
    *,
    exclude_holidays: bool = False,
    country: str | None = None,
) -> datetime:
    """
    Step forward one calendar day at a time until ``days`` business days
    have been counted. Time of day is preserved.
    """
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if is_business_day(current, exclude_holidays=exclude_holidays, country=country):
            added += 1
    return current
