"""Signals emitted by the core and the dispatcher that delivers them."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import Any, Callable, List, Optional

from .entities import CurrentTaskSnapshot
from .mirror import CurrentTaskMirror

logger = logging.getLogger(__name__)


class NotificationSignal(Enum):
    REST_FINISHED = "rest_finished"
    TASK_CHANGED = "task_changed"


@dataclass
class Notification:
    signal: NotificationSignal
    snapshot: CurrentTaskSnapshot
    message: str = ""
    timestamp: float = field(default_factory=time.time)


class NotificationService:
    """Records every signal and logs it.

    Delivery (vibration, toast, watch face refresh) belongs to whoever
    subscribes through ``add_handler``.
    """

    def __init__(self, history_size: int = 100) -> None:
        self._lock = RLock()
        self._history: List[Notification] = []
        self._history_size = history_size
        self._handlers: List[Callable[[Notification], Any]] = []

    def add_handler(self, handler: Callable[[Notification], Any]) -> None:
        self._handlers.append(handler)

    def notify(self, signal: NotificationSignal, snapshot: CurrentTaskSnapshot, message: str = "") -> Notification:
        notification = Notification(signal, snapshot, message)
        with self._lock:
            self._history.append(notification)
            del self._history[: -self._history_size]
        logger.info("Signal %s: [P%s] %s %s", signal.value, snapshot.priority, snapshot.tag, message)
        for handler in list(self._handlers):
            handler(notification)
        return notification

    def get_history(self, signal: Optional[NotificationSignal] = None) -> List[Notification]:
        with self._lock:
            if signal is None:
                return list(self._history)
            return [item for item in self._history if item.signal is signal]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


class BackgroundDispatcher:
    """Runs collaborator calls off the caller's thread.

    Failures are logged here and never reach the mutation that triggered them.
    ``synchronous=True`` runs jobs inline, which keeps tests deterministic.
    """

    def __init__(self, *, synchronous: bool = False) -> None:
        self.synchronous = synchronous
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="timetagger-io")

    def submit(self, job: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        if self._executor is None:
            self._run(job, *args, **kwargs)
            return None
        return self._executor.submit(self._run, job, *args, **kwargs)

    @staticmethod
    def _run(job: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            job(*args, **kwargs)
        except Exception:
            logger.exception("Background job %s failed", getattr(job, "__qualname__", job))

    def close(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


class Broadcaster:
    """Fans core state changes out to the notifier and the mirror."""

    def __init__(
        self,
        dispatcher: BackgroundDispatcher,
        notifier: Optional[NotificationService] = None,
        mirror: Optional[CurrentTaskMirror] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.mirror = mirror

    def task_changed(self, snapshot: CurrentTaskSnapshot) -> None:
        self._notify(NotificationSignal.TASK_CHANGED, snapshot)
        self.state_changed(snapshot)

    def rest_finished(self, snapshot: CurrentTaskSnapshot) -> None:
        self._notify(NotificationSignal.REST_FINISHED, snapshot, "Rest is over")
        self.state_changed(snapshot)

    def state_changed(self, snapshot: CurrentTaskSnapshot) -> None:
        if self.mirror is not None:
            self.dispatcher.submit(self.mirror.publish, snapshot)

    def _notify(self, signal: NotificationSignal, snapshot: CurrentTaskSnapshot, message: str = "") -> None:
        if self.notifier is not None:
            self.dispatcher.submit(self.notifier.notify, signal, snapshot, message)


__all__ = ["BackgroundDispatcher", "Broadcaster", "Notification", "NotificationService", "NotificationSignal"]
