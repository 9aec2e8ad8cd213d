"""
Next-run calculation for recurring schedules.

All arithmetic happens in UTC with seconds and microseconds zeroed. The result
is always the earliest instant >= now that satisfies the cadence.
Days of week use 0=Sunday..6=Saturday.
"""
import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from models import RepeatSpec
from utils import ensure_utc

DEFAULT_HOUR = 9
DEFAULT_MINUTE = 0
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


def sunday_weekday(day: date) -> int:
    """Python's Monday=0 weekday converted to Sunday=0."""
    return (day.weekday() + 1) % 7


def _at(day: date, hour: int, minute: int) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _clamped(year: int, month: int, day_of_month: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def next_run(now: datetime, cadence: RepeatSpec) -> datetime:
    """Compute the next execution instant for a cadence, relative to now."""
    now = ensure_utc(now)
    today = now.date()
    hour = DEFAULT_HOUR if cadence.hour is None else cadence.hour
    minute = DEFAULT_MINUTE if cadence.minute is None else cadence.minute
    interval = max(1, cadence.interval or 1)
    frequency = cadence.frequency or ("weekly" if cadence.days_of_week else "daily")

    if frequency == "daily":
        candidate = _at(today, hour, minute)
        if candidate < now:
            candidate += timedelta(days=interval)
        return candidate

    if frequency == "weekly":
        days = cadence.days_of_week or [sunday_weekday(today)]
        for offset in range(7 * interval + 1):
            day = today + timedelta(days=offset)
            if sunday_weekday(day) in days:
                candidate = _at(day, hour, minute)
                if candidate >= now:
                    return candidate
        return _at(today + timedelta(days=7 * interval), hour, minute)

    if frequency == "monthly":
        day_of_month = min(31, max(1, cadence.day_of_month or today.day))
        candidate = _at(_clamped(today.year, today.month, day_of_month), hour, minute)
        if candidate < now:
            year, month = _add_months(today.year, today.month, interval)
            candidate = _at(_clamped(year, month, day_of_month), hour, minute)
        return candidate

    raise ValueError(f"Unsupported frequency: {frequency}")


def next_run_for_repeat(now: datetime, repeat: Optional[RepeatSpec]) -> Optional[datetime]:
    """Next run of an embedded task repeat, or None when it is disabled."""
    if repeat is None or not repeat.enabled:
        return None
    return next_run(now, repeat)


def next_run_for_days(now: datetime, days_of_week: list[int], hour: int, minute: int) -> datetime:
    """Next run of a recurring definition (weekly cadence over the given days)."""
    cadence = RepeatSpec(
        enabled=True,
        frequency="weekly",
        days_of_week=days_of_week or ALL_DAYS,
        hour=hour,
        minute=minute,
    )
    return next_run(now, cadence)
