"""Day keys and "last N days" range filtering.

All dates are device-local. A timestamp belongs to the calendar day of the
UTC offset it was recorded with, so a later timezone change does not move
already-logged cycles to another day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Union

ALL = "all"

RangeValue = Union[str, int]

# Day keys written by the browser version of the timer (en-US locale)
_LEGACY_DAY_FORMATS = ("%m/%d/%Y",)


def local_now() -> datetime:
    return datetime.now().astimezone()


def parse_range(value) -> RangeValue:
    """Normalize a range filter to "all" or a positive day count.

    Raises ValueError for anything else.
    """
    if isinstance(value, str) and value.strip().lower() == ALL:
        return ALL
    if isinstance(value, bool):
        raise ValueError(f"Invalid range: {value!r}")
    try:
        days = int(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid range: {value!r} (expected 'all' or a positive number of days)")
    if days <= 0:
        raise ValueError(f"Invalid range: {value!r} (expected 'all' or a positive number of days)")
    return days


def day_key(moment: Union[datetime, date]) -> str:
    if isinstance(moment, datetime):
        moment = moment.date()
    return moment.isoformat()


def parse_day_key(key: str) -> Optional[date]:
    try:
        return date.fromisoformat(key)
    except (TypeError, ValueError):
        pass
    for fmt in _LEGACY_DAY_FORMATS:
        try:
            return datetime.strptime(key, fmt).date()
        except (TypeError, ValueError):
            continue
    return None


def cutoff_date(range_value: RangeValue, today: date) -> Optional[date]:
    """First day included by the range, or None for "all"."""
    range_value = parse_range(range_value)
    if range_value == ALL:
        return None
    return today - timedelta(days=range_value - 1)


def in_range(day: date, range_value: RangeValue, today: date) -> bool:
    cutoff = cutoff_date(range_value, today)
    return cutoff is None or day >= cutoff


def range_label(range_value: RangeValue) -> str:
    range_value = parse_range(range_value)
    if range_value == ALL:
        return "All Time"
    if range_value == 1:
        return "Today"
    return f"Last {range_value} Days"
