"""Priority rules for starting, interrupting, queueing and completing tasks."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from .cache import TimelineCache
from .entities import CurrentTask, CurrentTaskSnapshot, Event, PendingTask, SuggestedTask, TimeRecord
from .notifications import Broadcaster
from .policies import CompletionPolicy, InterruptPolicy
from .rest import RestTracker
from .store import LAST_DATE, LAST_TAG, PENDING_QUEUE, Store, current_task_fields, encode_pending
from .timeline import MIN_RECORD_MS, derive_timeline, has_open_tail
from .utils import day_bounds, day_key

logger = logging.getLogger(__name__)


def _validate(priority: int, tag: str) -> str:
    if isinstance(priority, bool) or not isinstance(priority, int) or priority < 0:
        raise ValueError("priority must be a non-negative integer")
    cleaned = (tag or "").strip()
    if not cleaned:
        raise ValueError("tag must not be empty")
    return cleaned


def _first_pending(tasks: List[PendingTask]) -> Optional[PendingTask]:
    if not tasks:
        return None
    return min(tasks, key=lambda task: task.sort_key)


class TaskManager:
    """State machine over ``Idle`` / ``Active(priority, tag)`` plus the queue."""

    def __init__(
        self,
        store: Store,
        *,
        clock: Callable[[], int],
        tz: ZoneInfo,
        interrupt_policy: InterruptPolicy = InterruptPolicy.STRICT,
        completion_policy: CompletionPolicy = CompletionPolicy.MANUAL_PICK,
        rest: Optional[RestTracker] = None,
        timeline_cache: Optional[TimelineCache] = None,
        broadcaster: Optional[Broadcaster] = None,
        min_record_ms: int = MIN_RECORD_MS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._tz = tz
        self.interrupt_policy = interrupt_policy
        self.completion_policy = completion_policy
        self._rest = rest
        self._timeline_cache = timeline_cache
        self._broadcaster = broadcaster
        self.min_record_ms = min_record_ms

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_task(self, priority: int, tag: str) -> bool:
        """Start the task or defer it, depending on the interrupt policy.

        Returns ``True`` when the task became active, ``False`` when queued.
        """
        tag = _validate(priority, tag)
        with self._store.lock:
            current = self._store.current_task()
            if current.is_empty() or self.interrupt_policy.should_interrupt(priority, current.priority):
                self._start(priority, tag)
                return True
            entry = PendingTask(priority, tag, self._clock())
            self._store.add_pending(entry)
        logger.info("Queued [P%s] %s behind [P%s] %s", priority, tag, current.priority, current.tag)
        return False

    def start_task(self, priority: int, tag: str) -> None:
        self._start(priority, _validate(priority, tag))

    def complete_task(self) -> bool:
        with self._store.lock:
            if self._store.current_task().is_empty():
                return False
            if self._rest is not None:
                self._rest.settle()
            current = self._store.current_task()
            now = self._clock()
            self._store.append_event(
                day_key(now, self._tz),
                Event.terminator(now),
                close_rest=current.rest_time,
                also=current_task_fields(CurrentTask.empty()),
            )
            logger.info("Completed [P%s] %s with %s ms rest", current.priority, current.tag, current.rest_time)
            started = None
            if self.completion_policy.auto_starts_next:
                started = self.start_first_pending_task()
        if started is None:
            self._announce()
        return True

    def start_first_pending_task(self) -> Optional[PendingTask]:
        with self._store.lock:
            tasks = self._store.read_pending()
            first = _first_pending(tasks)
            if first is None:
                return None
            tasks.remove(first)
            self._start(first.priority, first.tag, also={PENDING_QUEUE: encode_pending(tasks)})
        return first

    def start_pending_task(self, entry: PendingTask) -> bool:
        with self._store.lock:
            tasks = self._store.read_pending()
            if entry not in tasks:
                return False
            tasks.remove(entry)
            self._start(entry.priority, entry.tag, also={PENDING_QUEUE: encode_pending(tasks)})
        return True

    def remove_pending_task(self, entry: PendingTask) -> bool:
        with self._store.lock:
            tasks = self._store.read_pending()
            if entry not in tasks:
                return False
            tasks.remove(entry)
            self._store.write_pending(tasks)
        logger.info("Removed pending [P%s] %s", entry.priority, entry.tag)
        return True

    def update_current_task_tag(self, tag: str) -> bool:
        """Rename the active task without touching the log."""
        with self._store.lock:
            current = self._store.current_task()
            if current.is_empty():
                return False
            self._store.write({LAST_TAG: _validate(current.priority, tag)})
        self._announce()
        return True

    def _start(self, priority: int, tag: str, also: Optional[Mapping[str, Any]] = None) -> None:
        with self._store.lock:
            if self._rest is not None:
                self._rest.settle()
            previous = self._store.current_task()
            now = self._clock()
            day = day_key(now, self._tz)
            updates: Dict[str, Any] = current_task_fields(CurrentTask(priority, tag, 0))
            updates[LAST_DATE] = day
            updates.update(also or {})
            self._store.append_event(
                day,
                Event(now, tag, priority, 0),
                close_rest=None if previous.is_empty() else previous.rest_time,
                also=updates,
            )
        logger.info("Started [P%s] %s", priority, tag)
        self._announce()

    def _announce(self) -> None:
        if self._broadcaster is not None:
            self._broadcaster.task_changed(self.snapshot())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def current_task(self) -> CurrentTask:
        return self._store.current_task()

    def snapshot(self) -> CurrentTaskSnapshot:
        return CurrentTaskSnapshot.of(self._store.current_task())

    def pending_tasks(self) -> List[PendingTask]:
        return sorted(self._store.read_pending(), key=lambda task: task.sort_key)

    def get_pending_task_count(self) -> int:
        return len(self._store.read_pending())

    def get_suggested_task(self) -> SuggestedTask:
        first = _first_pending(self._store.read_pending())
        if first is None:
            return SuggestedTask.empty()
        return SuggestedTask(first.priority, first.tag)

    def records_for(self, day: str) -> List[TimeRecord]:
        """Derive any day's timeline; only today can have an open tail."""
        now = self._clock()
        if day == day_key(now, self._tz):
            return self.today_records()
        _, day_end = day_bounds(day, self._tz)
        return derive_timeline(
            self._store.read_events(day),
            False,
            now,
            min_duration_ms=self.min_record_ms,
            day_end=day_end,
        )

    def today_records(self) -> List[TimeRecord]:
        with self._store.lock:
            now = self._clock()
            day = day_key(now, self._tz)
            current = self._store.current_task()
            if self._timeline_cache is not None:
                cached = self._timeline_cache.get(day, now, current.rest_time)
                if cached is not None:
                    return cached
            events = self._store.read_events(day)
            has_open = not current.is_empty()
            _, day_end = day_bounds(day, self._tz)
            records = derive_timeline(
                events,
                has_open,
                now,
                current_rest_time=current.rest_time,
                min_duration_ms=self.min_record_ms,
                day_end=day_end,
            )
            if self._timeline_cache is not None:
                self._timeline_cache.put(day, records, now, has_open_tail(events, has_open))
            return records


__all__ = ["TaskManager"]
