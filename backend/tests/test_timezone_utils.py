"""
Tests for timezone and week helpers.

Covers:
- Parsing and UTC normalization
- Past checks with an inclusive boundary
- Week boundaries across DST and extreme offsets
- ISO week helpers
"""

import pytest
from datetime import datetime, timedelta, timezone

from services.errors import InvalidDateError, InvalidTimezoneError
from services.timezone_utils import (
    as_utc,
    format_datetime_for_user,
    format_iso_week,
    get_date_from_iso_week,
    get_iso_week,
    get_time_in_timezone,
    get_validated_timezone,
    get_weekday_in_timezone,
    is_in_past,
    is_same_iso_week,
    parse_datetime,
    to_db_datetime,
    week_boundaries,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================================
# TESTS - PARSING
# ============================================================

class TestParsing:

    def test_parses_z_suffix(self):
        assert parse_datetime("2050-01-10T06:30:00Z") == utc(2050, 1, 10, 6, 30)

    def test_naive_string_is_utc(self):
        assert parse_datetime("2050-01-10T06:30:00") == utc(2050, 1, 10, 6, 30)

    def test_offset_is_converted(self):
        assert parse_datetime("2050-01-10T07:30:00+01:00") == utc(2050, 1, 10, 6, 30)

    @pytest.mark.parametrize("value", ["", "not-a-date", "2050-13-45T00:00:00Z", None])
    def test_unparsable_values(self, value):
        with pytest.raises(InvalidDateError):
            parse_datetime(value)

    def test_db_datetime_is_naive_utc(self):
        aware = datetime(2050, 1, 10, 7, 30, tzinfo=timezone(timedelta(hours=1)))
        assert to_db_datetime(aware) == datetime(2050, 1, 10, 6, 30)
        assert as_utc(datetime(2050, 1, 10, 6, 30)).tzinfo == timezone.utc


# ============================================================
# TESTS - TIMEZONES
# ============================================================

class TestTimezones:

    def test_unknown_zone_raises(self):
        with pytest.raises(InvalidTimezoneError):
            get_weekday_in_timezone("2050-01-10T06:30:00Z", "Mars/Olympus")

    def test_validated_timezone_falls_back(self):
        assert get_validated_timezone("Europe/Paris") == "Europe/Paris"
        assert get_validated_timezone("Nowhere/City") == "UTC"
        assert get_validated_timezone(None) == "UTC"

    def test_local_weekday_and_time(self):
        instant = "2050-01-10T06:30:00Z"
        assert get_weekday_in_timezone(instant, "Europe/Paris") == "MONDAY"
        assert get_time_in_timezone(instant, "Europe/Paris") == "07:30"
        assert format_datetime_for_user(instant, "Europe/Paris") == "Monday 07:30"

    def test_local_day_can_differ_from_utc_day(self):
        # 23:30 UTC Sunday is already Monday in Paris
        instant = "2050-01-09T23:30:00Z"
        assert get_weekday_in_timezone(instant, "UTC") == "SUNDAY"
        assert get_weekday_in_timezone(instant, "Europe/Paris") == "MONDAY"


# ============================================================
# TESTS - PAST CHECK
# ============================================================

class TestIsInPast:

    def test_yesterday_is_past(self):
        assert is_in_past("2024-01-14T10:00:00Z", "Europe/Paris", "2024-01-15T10:00:00Z")

    def test_later_today_is_not_past(self):
        assert not is_in_past("2024-01-15T15:00:00Z", "Europe/Paris", "2024-01-15T10:00:00Z")

    def test_equal_instant_is_not_past(self):
        now = utc(2024, 1, 15, 10, 0)
        assert not is_in_past(now, "Pacific/Kiritimati", now)
        assert is_in_past(now - timedelta(milliseconds=1), "Pacific/Kiritimati", now)


# ============================================================
# TESTS - WEEK BOUNDARIES
# ============================================================

class TestWeekBoundaries:

    def test_utc_week(self):
        week = week_boundaries("2024-01-17T12:00:00Z", "UTC")
        assert week.week_start == utc(2024, 1, 15)
        assert week.week_end == utc(2024, 1, 21, 23, 59, 59, 999000)

    def test_week_spanning_dst_start(self):
        # Europe switches to summer time on Sunday 2024-03-31
        week = week_boundaries("2024-03-27T12:00:00Z", "Europe/Paris")
        assert week.week_start == utc(2024, 3, 24, 23, 0)
        assert week.week_end == utc(2024, 3, 31, 21, 59, 59, 999000)

    def test_utc_plus_14(self):
        # 10:00 UTC Monday is already Tuesday 00:00 in Kiritimati
        week = week_boundaries("2024-01-15T10:00:00Z", "Pacific/Kiritimati")
        assert week.week_start == utc(2024, 1, 14, 10, 0)
        assert week.week_end == utc(2024, 1, 21, 9, 59, 59, 999000)

    def test_utc_minus_11(self):
        # 10:00 UTC Monday is still Sunday 23:00 in Pago Pago
        week = week_boundaries("2024-01-15T10:00:00Z", "Pacific/Pago_Pago")
        assert week.week_start == utc(2024, 1, 8, 11, 0)
        assert week.week_end == utc(2024, 1, 15, 10, 59, 59, 999000)

    def test_invalid_inputs(self):
        with pytest.raises(InvalidDateError):
            week_boundaries("yesterday", "UTC")
        with pytest.raises(InvalidTimezoneError):
            week_boundaries("2024-01-15T10:00:00Z", "Not/AZone")


# ============================================================
# TESTS - ISO WEEKS
# ============================================================

class TestIsoWeeks:

    def test_date_from_iso_week(self):
        assert get_date_from_iso_week(2024, 3) == utc(2024, 1, 15)
        assert get_date_from_iso_week(2024, 3, "Europe/Paris") == utc(2024, 1, 14, 23, 0)

    def test_invalid_iso_week(self):
        with pytest.raises(InvalidDateError):
            get_date_from_iso_week(2021, 53)

    def test_week_helpers(self):
        assert get_iso_week("2024-01-15T10:00:00Z") == 3
        assert format_iso_week("2024-01-15T10:00:00Z") == "Week 3, 2024"
        assert is_same_iso_week("2024-01-15T00:00:00Z", "2024-01-21T23:00:00Z")
        assert not is_same_iso_week("2024-01-21T23:30:00Z", "2024-01-22T00:30:00Z")
