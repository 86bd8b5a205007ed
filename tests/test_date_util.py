from datetime import date, datetime, time, timezone

import pytest

from date_util import (build_date_keys, get_time_zone, get_week_start, get_weekday_code,
                       get_workweek_date_keys, local_datetime, parse_date_key,
                       parse_time_minutes, parse_time_of_day, parse_timestamp, to_utc_iso)


@pytest.mark.parametrize("date_key,expected", [
    ("2026-03-01", "SU"),
    ("2026-03-02", "MO"),
    ("2026-03-06", "FR"),
    ("2026-03-07", "SA"),
])
def test_weekday_code_is_sunday_indexed(date_key, expected):
    assert get_weekday_code(date_key) == expected


def test_weekday_code_accepts_date_objects():
    assert get_weekday_code(date(2026, 3, 3)) == "TU"


@pytest.mark.parametrize("value", ["", "2026-13-01", "not-a-date", None, 20260301])
def test_weekday_code_unparseable(value):
    assert get_weekday_code(value) is None


def test_parse_date_key():
    assert parse_date_key("2026-02-27") == date(2026, 2, 27)
    assert parse_date_key("27/02/2026") is None


@pytest.mark.parametrize("value,expected", [
    ("09:00", 540),
    ("9:05", 545),
    ("13:30:59", 810),
    ("00:00", 0),
    ("23:59", 1439),
])
def test_parse_time_minutes(value, expected):
    assert parse_time_minutes(value) == expected


@pytest.mark.parametrize("value", [None, "", "24:00", "12:60", "12", "12:5", "ab:cd", "12:00\n", 900,
                                   "١٢:٣٠", "１２:３０"])
def test_parse_time_minutes_rejects_invalid(value):
    assert parse_time_minutes(value) is None


def test_week_start_puts_sunday_in_previous_week():
    assert get_week_start("2026-03-01") == date(2026, 2, 23)
    assert get_week_start("2026-03-02") == date(2026, 3, 2)


def test_workweek_date_keys():
    assert get_workweek_date_keys("2026-02-25") == [
        "2026-02-23", "2026-02-24", "2026-02-25", "2026-02-26", "2026-02-27",
    ]


def test_build_date_keys_window():
    assert build_date_keys("2026-03-02", 3) == ["2026-02-28", "2026-03-01", "2026-03-02"]


def test_build_date_keys_empty_for_bad_input():
    assert build_date_keys("bad", 3) == []
    assert build_date_keys("2026-03-02", 0) == []


def test_week_helpers_fail_soft():
    assert get_week_start("bad") is None
    assert get_workweek_date_keys("bad") == []


def test_parse_time_of_day():
    assert parse_time_of_day("08:00") == time(8, 0)
    assert parse_time_of_day("08:00:30") == time(8, 0, 30)
    assert parse_time_of_day("08:00:75") is None
    assert parse_time_of_day("99:99") is None
    assert parse_time_of_day("٠٨:٠٠") is None


def test_local_datetime_uses_time_zone():
    # Stockholm is UTC+1 in winter, UTC+2 in summer
    assert to_utc_iso(local_datetime("2026-02-27", time(8, 0))) == "2026-02-27T07:00:00+00:00"
    assert to_utc_iso(local_datetime("2026-06-01", time(8, 0))) == "2026-06-01T06:00:00+00:00"
    assert to_utc_iso(local_datetime("2026-02-27", time(8, 0), "UTC")) == "2026-02-27T08:00:00+00:00"
    assert local_datetime("bad", time(8, 0)) is None


def test_unknown_time_zone_falls_back_to_utc():
    assert get_time_zone("Mars/Olympus").zone == "UTC"


def test_parse_timestamp():
    utc = datetime(2026, 2, 27, 9, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2026-02-27T09:10:00Z") == utc
    assert parse_timestamp("2026-02-27T09:10:00.000Z") == utc
    assert parse_timestamp("2026-02-27T09:10:00+00:00") == utc
    # no offset: wall clock in the configured zone
    assert parse_timestamp("2026-02-27T10:10:00") == utc
    assert parse_timestamp("2026-02-27T09:10:00", "UTC") == utc


@pytest.mark.parametrize("value", [None, "", "yesterday", 1700000000])
def test_parse_timestamp_rejects_invalid(value):
    assert parse_timestamp(value) is None
