"""
Timezone and date helpers for schedule slots.

All instants handled by the services are timezone-aware UTC datetimes;
the database stores them as naive UTC. Local wall-clock values (weekday,
HH:MM) are always derived through an IANA zone from zoneinfo.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.errors import InvalidDateError, InvalidTimezoneError

logger = logging.getLogger(__name__)

WEEKDAYS = [
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
]

TIME_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")

DateLike = Union[datetime, str]


class WeekRange(NamedTuple):
    week_start: datetime
    week_end: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, raising InvalidTimezoneError if unknown."""
    if not name or not isinstance(name, str):
        raise InvalidTimezoneError(f"Invalid timezone: {name!r}")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(f"Invalid timezone: {name}") from exc


def is_valid_timezone(name: Optional[str]) -> bool:
    try:
        get_zone(name)
        return True
    except InvalidTimezoneError:
        return False


def get_validated_timezone(name: Optional[str], fallback: str = "UTC") -> str:
    """Return `name` when it is a known zone, otherwise `fallback` (logged)."""
    if is_valid_timezone(name):
        return name  # type: ignore[return-value]
    if name:
        logger.warning(f"Invalid timezone '{name}', falling back to {fallback}")
    return fallback


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_datetime(value: datetime) -> datetime:
    """Naive UTC representation used for storage."""
    return as_utc(value).replace(tzinfo=None)


def parse_datetime(value: DateLike) -> datetime:
    """
    Parse an ISO-8601 datetime (or pass a datetime through) as aware UTC.

    Naive values are interpreted as UTC. A trailing 'Z' is accepted.

    Raises:
        InvalidDateError: when the value cannot be parsed
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError(f"Invalid date: {value!r}")

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidDateError(f"Invalid date: {value}") from exc
    return as_utc(parsed)


def to_local(instant: DateLike, tz_name: str) -> datetime:
    return parse_datetime(instant).astimezone(get_zone(tz_name))


def is_in_past(instant: DateLike, tz_name: str, reference_now: Optional[DateLike] = None) -> bool:
    """
    True when `instant` is strictly before `reference_now` in `tz_name`.

    An instant equal to the reference is not in the past.
    """
    local_instant = to_local(instant, tz_name)
    local_now = to_local(reference_now if reference_now is not None else utcnow(), tz_name)
    return local_instant < local_now


def week_boundaries(reference_date: DateLike, tz_name: str) -> WeekRange:
    """
    Monday 00:00:00.000 to Sunday 23:59:59.999 local time, as UTC instants,
    for the week containing `reference_date` in `tz_name`.
    """
    zone = get_zone(tz_name)
    local_day = parse_datetime(reference_date).astimezone(zone).date()
    monday = local_day - timedelta(days=local_day.weekday())
    sunday = monday + timedelta(days=6)

    start_local = datetime.combine(monday, time.min, tzinfo=zone)
    end_local = datetime.combine(sunday, time(23, 59, 59, 999000), tzinfo=zone)
    return WeekRange(
        week_start=start_local.astimezone(timezone.utc),
        week_end=end_local.astimezone(timezone.utc),
    )


def get_weekday_in_timezone(instant: DateLike, tz_name: str) -> str:
    return WEEKDAYS[to_local(instant, tz_name).weekday()]


def get_time_in_timezone(instant: DateLike, tz_name: str) -> str:
    return to_local(instant, tz_name).strftime("%H:%M")


def format_datetime_for_user(instant: DateLike, tz_name: str) -> str:
    """Human readable local weekday and time, e.g. 'Monday 07:30'."""
    return to_local(instant, tz_name).strftime("%A %H:%M")


def format_local_datetime(instant: DateLike, tz_name: str) -> str:
    return to_local(instant, tz_name).strftime("%Y-%m-%d %H:%M")


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


# =============================================================================
# ISO week helpers
# =============================================================================

def get_iso_week(instant: DateLike, tz_name: str = "UTC") -> int:
    return to_local(instant, tz_name).isocalendar()[1]


def get_iso_week_year(instant: DateLike, tz_name: str = "UTC") -> int:
    return to_local(instant, tz_name).isocalendar()[0]


def get_date_from_iso_week(year: int, week: int, tz_name: str = "UTC") -> datetime:
    """UTC instant of Monday 00:00 local time for ISO `week` of `year`."""
    try:
        monday = date.fromisocalendar(year, week, 1)
    except ValueError as exc:
        raise InvalidDateError(f"Invalid ISO week: {year}-W{week:02d}") from exc
    local = datetime.combine(monday, time.min, tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc)


def is_same_iso_week(first: DateLike, second: DateLike, tz_name: str = "UTC") -> bool:
    a = to_local(first, tz_name).isocalendar()
    b = to_local(second, tz_name).isocalendar()
    return (a[0], a[1]) == (b[0], b[1])


def format_iso_week(instant: DateLike, tz_name: str = "UTC") -> str:
    iso = to_local(instant, tz_name).isocalendar()
    return f"Week {iso[1]}, {iso[0]}"
