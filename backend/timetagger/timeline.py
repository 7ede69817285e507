"""Derivation of closed time intervals from a day's event log."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .entities import Event, TimeRecord

MIN_RECORD_MS = 60_000


def derive_timeline(
    events: Sequence[Event],
    has_open_task: bool,
    now: int,
    *,
    current_rest_time: int = 0,
    min_duration_ms: int = MIN_RECORD_MS,
    day_end: Optional[int] = None,
) -> List[TimeRecord]:
    """Pair each start event with the timestamp that closes it.

    Terminators produce no record of their own but close the interval before
    them. The last event ends at ``now`` while a task is open, otherwise after
    ``min_duration_ms``. When ``day_end`` is given, a closing timestamp on the
    day's final millisecond (the rollover terminator) closes at ``day_end`` so
    split intervals add up exactly.
    """
    records: List[TimeRecord] = []
    last_index = len(events) - 1
    for index, event in enumerate(events):
        if event.is_terminator:
            continue
        rest_time = event.rest_time
        if index < last_index:
            end = events[index + 1].timestamp
            if day_end is not None and end == day_end - 1:
                end = day_end
        elif has_open_task:
            end = now
            rest_time = current_rest_time
        else:
            end = event.timestamp + min_duration_ms
        records.append(TimeRecord(event.timestamp, max(end, event.timestamp), event.tag, event.priority, rest_time))
    return records


def has_open_tail(events: Sequence[Event], has_open_task: bool) -> bool:
    """True when the last record of the derivation tracks the live task."""
    return has_open_task and bool(events) and not events[-1].is_terminator


def total_duration(records: Iterable[TimeRecord]) -> int:
    return sum(record.duration for record in records)


def total_rest(records: Iterable[TimeRecord]) -> int:
    return sum(record.rest_time for record in records)


__all__ = ["MIN_RECORD_MS", "derive_timeline", "has_open_tail", "total_duration", "total_rest"]
