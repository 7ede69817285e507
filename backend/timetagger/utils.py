from __future__ import annotations

import datetime as dt
import time
from typing import Iterator, Tuple
from zoneinfo import ZoneInfo

DAY_KEY_FORMAT = "%Y-%m-%d"


def now_ms() -> int:
    return int(time.time() * 1000)


def to_datetime(timestamp: int, tz: ZoneInfo) -> dt.datetime:
    return dt.datetime.fromtimestamp(timestamp / 1000, tz=tz)


def to_ms(value: dt.datetime) -> int:
    return int(round(value.timestamp() * 1000))


def day_key(timestamp: int, tz: ZoneInfo) -> str:
    """Return the calendar day a timestamp falls on in ``tz``."""
    return to_datetime(timestamp, tz).strftime(DAY_KEY_FORMAT)


def parse_day_key(key: str) -> dt.date:
    return dt.datetime.strptime(key, DAY_KEY_FORMAT).date()


def day_bounds(key: str, tz: ZoneInfo) -> Tuple[int, int]:
    """Return ``(start, end)`` of a day in ms, with ``end`` exclusive."""
    day = parse_day_key(key)
    start_local = dt.datetime.combine(day, dt.time.min, tzinfo=tz)
    end_local = dt.datetime.combine(day + dt.timedelta(days=1), dt.time.min, tzinfo=tz)
    return to_ms(start_local), to_ms(end_local)


def days_between(first: str, last: str) -> Iterator[str]:
    """Yield the day keys strictly between ``first`` and ``last``."""
    current = parse_day_key(first) + dt.timedelta(days=1)
    stop = parse_day_key(last)
    while current < stop:
        yield current.strftime(DAY_KEY_FORMAT)
        current += dt.timedelta(days=1)


def format_clock(timestamp: int, tz: ZoneInfo) -> str:
    return to_datetime(timestamp, tz).strftime("%H:%M")


def format_duration(ms: int) -> str:
    total_minutes = max(ms, 0) // 60000
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"
