"""Service-day arithmetic for the agency timezone.

A service day runs from 03:00:00 local time until 02:59:59 the next calendar
day. Trips running after midnight belong to the previous day's schedule and
are described with extended times of day (hours 24-26).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, timedelta, timezone
from zoneinfo import ZoneInfo

AGENCY_TZ = ZoneInfo("America/New_York")
SERVICE_DAY_START = dt_time(3, 0, 0)


@dataclass(frozen=True)
class Period:
    start: datetime
    end: datetime


def to_local(instant: datetime) -> datetime:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError(f"Expected a timezone-aware datetime, got {instant!r}")
    return instant.astimezone(AGENCY_TZ)


def service_day(instant: datetime) -> date:
    local = to_local(instant)
    if local.time() < SERVICE_DAY_START:
        return local.date() - timedelta(days=1)
    return local.date()


def service_day_window(instant: datetime) -> Period:
    """Return the service day containing ``instant``, ending one second before the next."""
    day = service_day(instant)
    start = datetime.combine(day, SERVICE_DAY_START, tzinfo=AGENCY_TZ)
    next_start = datetime.combine(day + timedelta(days=1), SERVICE_DAY_START, tzinfo=AGENCY_TZ)
    # 02:59:59 does not exist on the spring-forward date, so step back in UTC.
    end = (next_start.astimezone(timezone.utc) - timedelta(seconds=1)).astimezone(AGENCY_TZ)
    return Period(start=start, end=end)


def is_same_service_day(a: datetime, b: datetime) -> bool:
    return service_day(a) == service_day(b)


def to_extended_time(instant: datetime) -> str:
    """Format ``instant`` as a GTFS time of day, e.g. ``26:59:59`` for 02:59:59."""
    local = to_local(instant)
    hour = local.hour + 24 if local.hour < SERVICE_DAY_START.hour else local.hour
    return f"{hour:02d}:{local.minute:02d}:{local.second:02d}"


def format_service_date(day: date) -> str:
    return day.strftime("%Y%m%d")


def _absolute(value: datetime) -> datetime:
    # Same-zone comparisons ignore ``fold``; compare in UTC instead.
    return value.astimezone(timezone.utc)


def intersect(a: Period, b: Period) -> Period | None:
    latest_start = max(a.start, b.start, key=_absolute)
    earliest_end = min(a.end, b.end, key=_absolute)
    if _absolute(latest_start) <= _absolute(earliest_end):
        return Period(start=latest_start, end=earliest_end)
    return None
