"""
Timezone helpers.

Bookings are stored as UTC instants; roster rules are school-local wall-clock
times and calendar dates. Roster checks therefore convert a booking instant
into the school-local date and HH:MM in `SCHOOL_TIMEZONE`.
"""

from __future__ import annotations

import os
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def school_timezone(name: Optional[str] = None) -> ZoneInfo:
    tz_name = name or os.getenv("SCHOOL_TIMEZONE", "UTC")
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        raise RuntimeError(f"SCHOOL_TIMEZONE {tz_name!r} is not a known IANA timezone")


def as_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime; naive values are taken as UTC (SQLite drops offsets)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_date_and_hhmm(instant: datetime, tz: ZoneInfo, *, ceil: bool = False) -> Tuple[date, str]:
    """
    School-local date and HH:MM of an instant.

    Sub-minute parts are dropped, or rounded up to the next minute with
    `ceil`, so an interval end never shrinks into a roster window.
    """
    local = as_utc(instant).astimezone(tz)
    if ceil and (local.second or local.microsecond):
        local = local.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return local.date(), f"{local.hour:02d}:{local.minute:02d}"
