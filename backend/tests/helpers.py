from __future__ import annotations

import datetime as dt

from timetagger.utils import to_ms

UTC = dt.timezone.utc


class FakeClock:
    """Epoch-millisecond clock that only moves when a test says so."""

    def __init__(self, start: dt.datetime) -> None:
        self.now = to_ms(start)

    def __call__(self) -> int:
        return self.now

    def advance(self, *, ms: int = 0, seconds: int = 0, minutes: int = 0, hours: int = 0, days: int = 0) -> int:
        self.now += ms + 1000 * (seconds + 60 * (minutes + 60 * (hours + 24 * days)))
        return self.now

    def set(self, moment: dt.datetime) -> int:
        self.now = to_ms(moment)
        return self.now


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> int:
    return to_ms(dt.datetime(year, month, day, hour, minute, second, tzinfo=UTC))
