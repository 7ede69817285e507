"""Day-boundary handling for a task that is still running at midnight."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from .entities import CurrentTask, Event
from .exports import LogExporter
from .notifications import BackgroundDispatcher
from .store import LAST_DATE, Store, current_task_fields, encode_events, events_key
from .utils import day_bounds, day_key, days_between, parse_day_key

logger = logging.getLogger(__name__)


class RolloverEngine:
    """Finalises the previous day's log once the calendar day has changed.

    An open task is split at the boundary: a terminator on the last
    millisecond of the old day and a fresh start event at midnight of today,
    both carrying the same tag and priority. Days the process slept through
    get a full-day span of the task.
    """

    def __init__(
        self,
        store: Store,
        *,
        clock: Callable[[], int],
        tz: ZoneInfo,
        exporter: Optional[LogExporter] = None,
        dispatcher: Optional[BackgroundDispatcher] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._tz = tz
        self._exporter = exporter
        self._dispatcher = dispatcher or BackgroundDispatcher(synchronous=True)

    def today(self) -> str:
        return day_key(self._clock(), self._tz)

    def check_and_rollover(
        self,
        last_seen_day_key: Optional[str] = None,
        today_fn: Optional[Callable[[], str]] = None,
    ) -> bool:
        """Run the rollover if the day changed. Returns ``True`` when it did."""
        with self._store.lock:
            today = today_fn() if today_fn is not None else self.today()
            stored = self._store.last_date()
            if stored == today:
                return False
            last_seen = stored if last_seen_day_key is None else last_seen_day_key
            if last_seen == today:
                return False
            if last_seen:
                try:
                    parse_day_key(last_seen)
                except ValueError:
                    logger.warning("Ignoring unreadable day marker %r, moving it to %s", last_seen, today)
                    last_seen = ""

            current = self._store.current_task()
            has_open_task = not current.is_empty()
            updates: Dict[str, Any] = {LAST_DATE: today}
            finalized: List[str] = []

            if last_seen and last_seen > today:
                logger.warning("Last seen day %s is after today %s, only moving the marker", last_seen, today)
            elif last_seen:
                finalized.append(last_seen)
                if has_open_task:
                    gap_days = list(days_between(last_seen, today))
                    updates.update(self._split(last_seen, gap_days, today, current))
                    finalized.extend(gap_days)
            if not has_open_task:
                updates.update(current_task_fields(CurrentTask.empty()))
            self._store.write(updates)

        logger.info(
            "Rolled over from %r to %s (open task: %s, finalised: %s)",
            last_seen,
            today,
            has_open_task,
            ", ".join(finalized) or "-",
        )
        if self._exporter is not None:
            for day in finalized:
                self._dispatcher.submit(self._exporter.save_daily_log, day)
        return True

    def _split(self, last_seen: str, gap_days: List[str], today: str, task: CurrentTask) -> Dict[str, str]:
        updates: Dict[str, str] = {}

        _, last_end = day_bounds(last_seen, self._tz)
        closing = self._store.read_events(last_seen)
        closing.append(Event.terminator(last_end - 1))
        updates[events_key(last_seen)] = encode_events(closing)

        for day in gap_days:
            start, end = day_bounds(day, self._tz)
            events = self._store.read_events(day)
            events.extend([Event(start, task.tag, task.priority), Event.terminator(end - 1)])
            updates[events_key(day)] = encode_events(events)

        today_start, _ = day_bounds(today, self._tz)
        opening = [Event(today_start, task.tag, task.priority)]
        opening.extend(self._store.read_events(today))
        updates[events_key(today)] = encode_events(opening)
        return updates


__all__ = ["RolloverEngine"]
