"""
Date and time helpers shared by services and background jobs.

Timestamps are stored in SQLite as naive UTC ISO strings
(``YYYY-MM-DDTHH:MM:SS``) so that string comparison in SQL matches
chronological order.  Business rules that talk about "today" (overdue
detection, routinary scheduling, daily due dates) are evaluated in the
configured timezone, ``Asia/Manila`` by default.
"""

from __future__ import annotations

import calendar
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from .config import settings


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_db(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage (naive UTC, second precision)."""
    if value is None:
        return None
    utc_value = ensure_aware(value).astimezone(timezone.utc).replace(tzinfo=None)
    return utc_value.isoformat(timespec="seconds")


def from_db(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime.

    SQLite's ``CURRENT_TIMESTAMP`` uses a space separator; ISO strings
    written by ``to_db`` use ``T``.  Both are accepted.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace(" ", "T"))
    return ensure_aware(parsed).astimezone(timezone.utc)


def start_of_local_day(now: Optional[datetime] = None) -> datetime:
    """Midnight of the current local day, returned in UTC."""
    local_now = ensure_aware(now or utcnow()).astimezone(local_zone())
    midnight = datetime.combine(local_now.date(), time.min, tzinfo=local_zone())
    return midnight.astimezone(timezone.utc)


def end_of_local_day(now: Optional[datetime] = None) -> datetime:
    """Last second of the current local day, returned in UTC."""
    local_now = ensure_aware(now or utcnow()).astimezone(local_zone())
    end = datetime.combine(local_now.date(), time(23, 59, 59), tzinfo=local_zone())
    return end.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length.

    ``add_months(Jan 31, 1)`` gives Feb 28 (or 29), not Mar 3.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_business_days(start: datetime, days: int) -> datetime:
    """Add ``days`` weekdays to ``start``, skipping Saturdays and Sundays."""
    result = start
    added = 0
    while added < days:
        result = result + timedelta(days=1)
        if result.weekday() < 5:
            added += 1
    return result
