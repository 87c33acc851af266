from datetime import date, datetime, time

import pytest
import pytz

from hrtrack.services.time_rules import (
    auto_clockout_cutoff,
    combine_date_time,
    ensure_utc,
    hours_between,
    lateness,
    local_day,
    minutes_past,
    parse_hhmm,
)
from tests.helpers import lagos

TZ = "Africa/Lagos"
START = time(8, 35)


def test_local_day_differs_from_utc_day_near_midnight():
    # 00:30 local on the 21st is still the 20th in UTC
    instant = lagos(2026, 10, 21, 0, 30)
    assert instant.date() == date(2026, 10, 20)
    assert local_day(instant, TZ) == date(2026, 10, 21)


def test_combine_date_time_is_utc():
    assert combine_date_time(date(2026, 10, 20), START, TZ) == pytz.UTC.localize(
        datetime(2026, 10, 20, 7, 35)
    )


def test_on_time_and_exactly_on_start_are_not_late():
    assert lateness(lagos(2026, 10, 20, 8, 0), START, TZ) == (False, 0)
    assert lateness(lagos(2026, 10, 20, 8, 35), START, TZ) == (False, 0)


def test_late_by_five_minutes():
    assert lateness(lagos(2026, 10, 20, 8, 40), START, TZ) == (True, 5)


def test_minutes_late_are_floored():
    assert lateness(lagos(2026, 10, 20, 8, 40, 59), START, TZ) == (True, 5)
    # Late by seconds still counts as late, with zero whole minutes
    assert lateness(lagos(2026, 10, 20, 8, 35, 30), START, TZ) == (True, 0)


def test_hours_between_rounds_to_two_decimals():
    assert hours_between(lagos(2026, 10, 20, 9), lagos(2026, 10, 20, 17, 30)) == 8.5
    assert hours_between(lagos(2026, 10, 20, 9), lagos(2026, 10, 20, 9, 20)) == 0.33


def test_minutes_past():
    day = date(2026, 10, 20)
    assert minutes_past(lagos(2026, 10, 20, 18, 30), day, time(18), TZ) == 30
    assert minutes_past(lagos(2026, 10, 20, 17, 59, 30), day, time(18), TZ) == -1


def test_auto_clockout_cutoff_is_local_midnight():
    cutoff = auto_clockout_cutoff(date(2026, 10, 19), TZ)
    assert cutoff == lagos(2026, 10, 20, 0, 0)
    assert auto_clockout_cutoff(date(2026, 10, 19), TZ, grace_minutes=30) == lagos(2026, 10, 20, 0, 30)


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2026, 10, 20, 8, 0)
    assert ensure_utc(naive).tzinfo is pytz.UTC
    assert ensure_utc(lagos(2026, 10, 20, 9)).hour == 8


@pytest.mark.parametrize("value,expected", [("08:35", time(8, 35)), ("18:00:00", time(18)), (" 07:05 ", time(7, 5))])
def test_parse_hhmm(value, expected):
    assert parse_hhmm(value) == expected


@pytest.mark.parametrize("value", ["", "25:00", "8h35", None])
def test_parse_hhmm_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_hhmm(value)
