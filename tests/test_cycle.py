import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from traffic_quota.cycle import cycle_start, local_now, seconds_since_cycle_start

UTC = timezone.utc


def test_reset_day_later_in_month_uses_previous_month():
    now = datetime(2024, 3, 15, 12, 0, 0, tzinfo=UTC)
    assert cycle_start(now, 20) == datetime(2024, 2, 20, tzinfo=UTC)


def test_reset_day_already_passed_uses_current_month():
    now = datetime(2024, 3, 25, 8, 30, 0, tzinfo=UTC)
    assert cycle_start(now, 20) == datetime(2024, 3, 20, tzinfo=UTC)


def test_reset_day_today_starts_at_midnight():
    now = datetime(2024, 3, 20, 0, 0, 5, tzinfo=UTC)
    assert cycle_start(now, 20) == datetime(2024, 3, 20, tzinfo=UTC)
    assert seconds_since_cycle_start(now, 20) == 5


def test_january_rolls_back_to_previous_december():
    now = datetime(2024, 1, 3, tzinfo=UTC)
    assert cycle_start(now, 10) == datetime(2023, 12, 10, tzinfo=UTC)


def test_reset_day_31_clamps_to_end_of_february():
    assert cycle_start(datetime(2023, 3, 15, tzinfo=UTC), 31) == datetime(2023, 2, 28, tzinfo=UTC)
    assert cycle_start(datetime(2024, 3, 15, tzinfo=UTC), 31) == datetime(2024, 2, 29, tzinfo=UTC)


def test_clamped_reset_in_current_month_has_already_happened():
    now = datetime(2023, 2, 28, 6, 0, 0, tzinfo=UTC)
    assert cycle_start(now, 31) == datetime(2023, 2, 28, tzinfo=UTC)
    assert seconds_since_cycle_start(now, 31) == 6 * 3600


def test_reset_day_30_in_30_day_previous_month():
    now = datetime(2024, 5, 29, tzinfo=UTC)
    assert cycle_start(now, 30) == datetime(2024, 4, 30, tzinfo=UTC)


def test_seconds_since_cycle_start_exact():
    now = datetime(2024, 3, 15, 0, 0, 0, tzinfo=UTC)
    # Feb 20 -> Mar 15 in a leap year is 24 days
    assert seconds_since_cycle_start(now, 20) == 24 * 86400


def test_seconds_are_bounded_by_a_month():
    start = datetime(2023, 1, 1, 13, 0, tzinfo=UTC)
    for offset in range(0, 800, 7):
        now = start + timedelta(days=offset)
        for reset_day in (1, 15, 28, 29, 30, 31):
            seconds = seconds_since_cycle_start(now, reset_day)
            assert 0 <= seconds <= 31 * 86400


def test_keeps_timezone_of_now():
    tz = timezone(timedelta(hours=2))
    now = datetime(2024, 3, 25, 1, 0, 0, tzinfo=tz)
    start = cycle_start(now, 25)
    assert start == datetime(2024, 3, 25, tzinfo=tz)
    assert seconds_since_cycle_start(now, 25) == 3600


@pytest.mark.parametrize("reset_day", [0, 32, -1])
def test_invalid_reset_day(reset_day):
    with pytest.raises(ValueError):
        cycle_start(datetime(2024, 3, 1, tzinfo=UTC), reset_day)


@pytest.fixture
def berlin_zone():
    try:
        return ZoneInfo("Europe/Berlin")
    except ZoneInfoNotFoundError:
        pytest.skip("Europe/Berlin zone data not available")


@pytest.fixture
def berlin_local_time(monkeypatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Europe/Berlin")
    time.tzset()
    if time.tzname[0] != "CET":
        monkeypatch.undo()
        time.tzset()
        pytest.skip("Europe/Berlin zone data not available")
    yield
    monkeypatch.undo()
    time.tzset()


# Berlin switches to summer time on 2024-03-31, so a cycle starting on
# 2024-03-20 00:00 CET (2024-03-19T23:00Z) spans the change.
DST_CYCLE_SECONDS = 21 * 86400 + 13 * 3600


def test_cycle_across_dst_with_zoneinfo(berlin_zone):
    now = datetime(2024, 4, 10, 14, 0, 0, tzinfo=berlin_zone)
    assert cycle_start(now, 20).astimezone(UTC) == datetime(2024, 3, 19, 23, 0, tzinfo=UTC)
    assert seconds_since_cycle_start(now, 20) == DST_CYCLE_SECONDS


def test_cycle_across_dst_in_system_local_time(berlin_local_time):
    naive_now = datetime(2024, 4, 10, 14, 0, 0)
    assert seconds_since_cycle_start(naive_now, 20) == DST_CYCLE_SECONDS

    fixed_offset_now = datetime(2024, 4, 10, 12, 0, 0, tzinfo=UTC).astimezone()
    assert cycle_start(fixed_offset_now, 20).astimezone(UTC) == datetime(2024, 3, 19, 23, 0, tzinfo=UTC)
    assert seconds_since_cycle_start(fixed_offset_now, 20) == DST_CYCLE_SECONDS


def test_local_now_without_zone_is_naive():
    assert local_now().tzinfo is None
    assert local_now(UTC).tzinfo is UTC
