"""Persistent key/value store holding the event log and task state.

Every logical field lives under its own key in the ``store_entries`` table.
Multi-field mutations go through :meth:`Store.write`, which commits all of
them in one transaction.
"""

from __future__ import annotations

import json
import logging
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from .cache import DecodeCache
from .entities import NO_PRIORITY, CurrentTask, Event, PendingTask
from .models import StoreEntry

logger = logging.getLogger(__name__)

EVENTS_PREFIX = "events_"
PENDING_QUEUE = "pending_queue"
LAST_TAG = "last_tag"
LAST_PRIORITY = "last_priority"
CURRENT_REST_TIME = "current_rest_time"
REST_START_TIME = "rest_start_time"
LAST_DATE = "last_date"

StoreListener = Callable[[FrozenSet[str]], None]


class StorageCorruption(ValueError):
    """Raised by the decoders when a persisted payload cannot be read."""


def events_key(day: str) -> str:
    return f"{EVENTS_PREFIX}{day}"


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StorageCorruption(f"{field} is not a number: {value!r}")
    return int(value)


def _load_list(raw: str) -> List[Any]:
    try:
        payload = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise StorageCorruption("payload is not valid JSON") from exc
    if not isinstance(payload, list):
        raise StorageCorruption("payload must be a JSON array")
    return payload


def encode_events(events: Iterable[Event]) -> str:
    items: List[Dict[str, Any]] = []
    for event in events:
        item: Dict[str, Any] = {"ts": event.timestamp, "tag": event.tag, "priority": event.priority}
        if event.rest_time:
            item["restTime"] = event.rest_time
        items.append(item)
    return json.dumps(items, ensure_ascii=False, separators=(",", ":"))


def decode_events(raw: str) -> List[Event]:
    events: List[Event] = []
    for index, item in enumerate(_load_list(raw)):
        if not isinstance(item, dict) or "ts" not in item:
            raise StorageCorruption(f"event {index} is malformed")
        tag = item.get("tag", "")
        if not isinstance(tag, str):
            raise StorageCorruption(f"event {index} has a non-text tag")
        events.append(
            Event(
                timestamp=_as_int(item["ts"], "ts"),
                tag=tag,
                priority=_as_int(item.get("priority", NO_PRIORITY), "priority"),
                rest_time=max(0, _as_int(item.get("restTime", 0), "restTime")),
            )
        )
    return events


def encode_pending(tasks: Iterable[PendingTask]) -> str:
    return json.dumps(
        [{"priority": task.priority, "tag": task.tag, "addTime": task.add_time} for task in tasks],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def decode_pending(raw: str) -> List[PendingTask]:
    tasks: List[PendingTask] = []
    for index, item in enumerate(_load_list(raw)):
        if not isinstance(item, dict) or not isinstance(item.get("tag"), str):
            raise StorageCorruption(f"pending entry {index} is malformed")
        tasks.append(
            PendingTask(
                priority=_as_int(item.get("priority"), "priority"),
                tag=item["tag"],
                add_time=_as_int(item.get("addTime"), "addTime"),
            )
        )
    return tasks


def current_task_fields(task: CurrentTask) -> Dict[str, Any]:
    return {LAST_TAG: task.tag, LAST_PRIORITY: task.priority, CURRENT_REST_TIME: task.rest_time}


def _to_text(key: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise TypeError(f"Unsupported value for {key}: {type(value).__name__}")


class Store:
    """Narrow per-field access to the persisted state.

    ``lock`` serialises every mutation in the process. Components that combine
    a read with a dependent write hold it across both.
    """

    def __init__(self, session_factory: Callable[[], Session], *, cache_enabled: bool = True) -> None:
        self.lock = RLock()
        self._session_factory = session_factory
        self._listeners: List[StoreListener] = []
        self._pending_cache: DecodeCache[tuple] = DecodeCache(enabled=cache_enabled)

    def subscribe(self, listener: StoreListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------
    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.get_many([key]).get(key, default)

    def get_many(self, keys: Sequence[str]) -> Dict[str, str]:
        with self.lock:
            session = self._session_factory()
            try:
                records = session.query(StoreEntry).filter(StoreEntry.key.in_(list(keys))).all()
                return {record.key: record.value for record in records}
            finally:
                session.close()

    def write(self, updates: Mapping[str, Any]) -> None:
        """Persist several keys atomically and notify listeners."""
        if not updates:
            return
        values = {key: _to_text(key, value) for key, value in updates.items()}
        with self.lock:
            session = self._session_factory()
            try:
                for key, value in values.items():
                    record = session.get(StoreEntry, key)
                    if record:
                        record.value = value
                    else:
                        session.add(StoreEntry(key=key, value=value))
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            if PENDING_QUEUE in values:
                self._pending_cache.clear()
            touched = frozenset(values)
            for listener in self._listeners:
                listener(touched)

    def _get_int(self, key: str, default: int) -> int:
        raw = self.get(key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring corrupted value for %s: %r", key, raw)
            return default

    # ------------------------------------------------------------------
    # Event log
    # ------------------------------------------------------------------
    def read_events(self, day: str) -> List[Event]:
        raw = self.get(events_key(day))
        if raw is None:
            return []
        try:
            return decode_events(raw)
        except StorageCorruption as exc:
            logger.warning("Event log for %s is unreadable, treating as empty: %s", day, exc)
            return []

    def append_event(
        self,
        day: str,
        event: Event,
        *,
        close_rest: Optional[int] = None,
        also: Optional[Mapping[str, Any]] = None,
    ) -> List[Event]:
        """Append ``event`` to the day's log.

        With ``close_rest`` the last start event of the log gets that rest time
        before the append, recording how much of the closed interval was rest.
        ``also`` holds further keys committed in the same transaction.
        """
        with self.lock:
            events = self.read_events(day)
            if close_rest is not None and events and not events[-1].is_terminator:
                last = events[-1]
                events[-1] = Event(last.timestamp, last.tag, last.priority, max(0, close_rest))
            events.append(event)
            updates: Dict[str, Any] = {events_key(day): encode_events(events)}
            updates.update(also or {})
            self.write(updates)
            return events

    def replace_events(self, day: str, events: Iterable[Event], *, also: Optional[Mapping[str, Any]] = None) -> None:
        updates: Dict[str, Any] = {events_key(day): encode_events(events)}
        updates.update(also or {})
        self.write(updates)

    def get_events_for_date(self, day: str) -> List[Event]:
        return self.read_events(day)

    def save_events_for_date(self, day: str, events: Iterable[Event]) -> None:
        self.replace_events(day, events)

    # ------------------------------------------------------------------
    # Pending queue
    # ------------------------------------------------------------------
    def raw_pending(self) -> str:
        return self.get(PENDING_QUEUE, "[]") or "[]"

    def read_pending(self) -> List[PendingTask]:
        raw = self.raw_pending()
        cached = self._pending_cache.get(raw)
        if cached is not None:
            return list(cached)
        try:
            tasks = decode_pending(raw)
        except StorageCorruption as exc:
            logger.warning("Pending queue is unreadable, treating as empty: %s", exc)
            tasks = []
        self._pending_cache.put(raw, tuple(tasks))
        return tasks

    def write_pending(self, tasks: Iterable[PendingTask]) -> None:
        self.write({PENDING_QUEUE: encode_pending(tasks)})

    def add_pending(self, task: PendingTask) -> None:
        with self.lock:
            tasks = self.read_pending()
            tasks.append(task)
            self.write_pending(tasks)

    def clear_pending(self) -> None:
        self.write_pending([])

    # ------------------------------------------------------------------
    # Current task and rest window
    # ------------------------------------------------------------------
    def current_task(self) -> CurrentTask:
        values = self.get_many([LAST_TAG, LAST_PRIORITY, CURRENT_REST_TIME])
        tag = values.get(LAST_TAG, "")
        try:
            priority = int(values.get(LAST_PRIORITY, NO_PRIORITY))
            rest_time = int(values.get(CURRENT_REST_TIME, 0))
        except ValueError:
            logger.warning("Current task fields are corrupted, treating task as empty")
            return CurrentTask.empty()
        return CurrentTask(priority, tag, max(0, rest_time))

    def clear_current_task(self) -> None:
        self.write(current_task_fields(CurrentTask.empty()))

    def current_rest_time(self) -> int:
        return max(0, self._get_int(CURRENT_REST_TIME, 0))

    def add_rest_time(self, rest_ms: int, *, also: Optional[Mapping[str, Any]] = None) -> int:
        with self.lock:
            total = self.current_rest_time() + max(0, rest_ms)
            updates: Dict[str, Any] = {CURRENT_REST_TIME: total}
            updates.update(also or {})
            self.write(updates)
            return total

    def rest_start_time(self) -> int:
        return max(0, self._get_int(REST_START_TIME, 0))

    def set_rest_start_time(self, timestamp: int) -> None:
        self.write({REST_START_TIME: timestamp})

    def clear_rest_start_time(self) -> None:
        self.write({REST_START_TIME: 0})

    # ------------------------------------------------------------------
    # Rollover marker
    # ------------------------------------------------------------------
    def last_date(self) -> str:
        return self.get(LAST_DATE, "") or ""

    def set_last_date(self, day: str) -> None:
        self.write({LAST_DATE: day})
