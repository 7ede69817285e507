"""Memoisation of derived read views.

Both caches are speed optimisations only: with ``enabled=False`` every lookup
misses and callers fall back to a full decode or derivation.
"""

from __future__ import annotations

import dataclasses
from threading import RLock
from typing import Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from .entities import TimeRecord

T = TypeVar("T")

EVENTS_KEY_PREFIX = "events_"
CURRENT_TASK_KEYS = frozenset({"last_tag", "last_priority"})


class DecodeCache(Generic[T]):
    """Remembers the decoded form of the most recent raw payload."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._lock = RLock()
        self._raw: Optional[str] = None
        self._value: Optional[T] = None

    def get(self, raw: str) -> Optional[T]:
        if not self.enabled:
            return None
        with self._lock:
            if self._raw is not None and self._raw == raw:
                return self._value
            return None

    def put(self, raw: str, value: T) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._raw = raw
            self._value = value

    def clear(self) -> None:
        with self._lock:
            self._raw = None
            self._value = None


@dataclasses.dataclass
class _TimelineEntry:
    records: Tuple[TimeRecord, ...]
    computed_at: int
    open_tail: bool


class TimelineCache:
    """Short-TTL cache of derived day timelines keyed by day key.

    An entry whose last record is the open current task is refreshed on every
    hit with the caller's ``now`` and live rest time, so a hit returns exactly
    what a fresh derivation would.
    """

    def __init__(self, ttl_ms: int, enabled: bool = True) -> None:
        self.ttl_ms = ttl_ms
        self.enabled = enabled and ttl_ms > 0
        self._lock = RLock()
        self._entries: Dict[str, _TimelineEntry] = {}

    def get(self, day: str, now: int, current_rest_time: int) -> Optional[List[TimeRecord]]:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(day)
            if entry is None:
                return None
            if now - entry.computed_at >= self.ttl_ms or now < entry.computed_at:
                del self._entries[day]
                return None
            records = list(entry.records)
        if entry.open_tail and records:
            tail = records[-1]
            records[-1] = dataclasses.replace(tail, end=max(now, tail.start), rest_time=current_rest_time)
        return records

    def put(self, day: str, records: Iterable[TimeRecord], now: int, open_tail: bool) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[day] = _TimelineEntry(tuple(records), now, open_tail)

    def invalidate(self, day: Optional[str] = None) -> None:
        with self._lock:
            if day is None:
                self._entries.clear()
            else:
                self._entries.pop(day, None)

    def on_store_write(self, keys: Iterable[str]) -> None:
        """Drop entries whose inputs were touched by a store write."""
        for key in keys:
            if key in CURRENT_TASK_KEYS:
                self.invalidate()
                return
            if key.startswith(EVENTS_KEY_PREFIX):
                self.invalidate(key[len(EVENTS_KEY_PREFIX):])


__all__ = ["DecodeCache", "TimelineCache"]
