"""
Billing cycle window calculation.

A cycle restarts at 00:00:00 on the same day of every month. Months shorter
than the reset day reset on their last day instead: with reset_day=31 the
February cycle starts on Feb 28 (Feb 29 in leap years).
"""
import calendar
from datetime import datetime, timezone, tzinfo
from typing import Optional


def _effective_reset_day(year: int, month: int, reset_day: int) -> int:
    return min(reset_day, calendar.monthrange(year, month)[1])


def cycle_start(now: datetime, reset_day: int) -> datetime:
    """Return midnight of the most recent reset date that is not after ``now``.

    The returned datetime carries ``now``'s tzinfo, except for the fixed
    offset that ``datetime.astimezone()`` attaches to system local time: that
    midnight is resolved with the local offset in force on the reset date.
    """
    if not 1 <= reset_day <= 31:
        raise ValueError(f"reset_day must be between 1 and 31, got {reset_day}")

    year, month = now.year, now.month
    day = _effective_reset_day(year, month, reset_day)
    if now.day < day:
        if month == 1:
            year, month = year - 1, 12
        else:
            month -= 1
        day = _effective_reset_day(year, month, reset_day)

    if _is_system_local(now):
        return datetime(year, month, day).astimezone()
    return datetime(year, month, day, tzinfo=now.tzinfo)


def _is_system_local(now: datetime) -> bool:
    # datetime.timezone compares by offset only
    return isinstance(now.tzinfo, timezone) and now.tzinfo == now.astimezone().tzinfo


def _as_utc(dt: datetime) -> datetime:
    # naive datetimes are interpreted as local time
    return dt.astimezone(timezone.utc)


def seconds_since_cycle_start(now: datetime, reset_day: int) -> int:
    start = cycle_start(now, reset_day)
    elapsed = _as_utc(now) - _as_utc(start)
    return max(0, int(elapsed.total_seconds()))


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Current time, in ``tz`` when given, otherwise naive system local time.

    A naive value is resolved with the UTC offset in force at each wall time,
    so a cycle spanning a DST change still starts at local midnight.
    """
    if tz is not None:
        return datetime.now(tz)
    return datetime.now()
