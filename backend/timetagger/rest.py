"""In-task rest windows.

A rest window is anchored to the wall clock: ``rest_start_time`` is persisted
and the deadline is always ``started_at + budget``. The in-memory timer is only
a wake-up; after a restart :meth:`RestTracker.resume` recomputes what is left.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Timer
from typing import Callable, Optional

from .entities import CurrentTaskSnapshot
from .notifications import Broadcaster
from .store import REST_START_TIME, Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestStatus:
    resting: bool
    started_at: int
    remaining_ms: int
    budget_ms: int
    rest_time: int


class RestTracker:
    def __init__(
        self,
        store: Store,
        *,
        budget_ms: int,
        clock: Callable[[], int],
        broadcaster: Optional[Broadcaster] = None,
        enable_timers: bool = True,
    ) -> None:
        self._store = store
        self.budget_ms = budget_ms
        self._clock = clock
        self._broadcaster = broadcaster
        self._enable_timers = enable_timers
        self._timer: Optional[Timer] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_resting(self) -> bool:
        return self._store.rest_start_time() > 0

    def started_at(self) -> int:
        return self._store.rest_start_time()

    def remaining_ms(self) -> int:
        started_at = self._store.rest_start_time()
        if started_at <= 0:
            return 0
        return max(0, started_at + self.budget_ms - self._clock())

    def status(self) -> RestStatus:
        with self._store.lock:
            started_at = self._store.rest_start_time()
            return RestStatus(
                resting=started_at > 0,
                started_at=started_at,
                remaining_ms=self.remaining_ms(),
                budget_ms=self.budget_ms,
                rest_time=self._store.current_rest_time(),
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def start_task_rest(self) -> bool:
        """Open a rest window for the active task."""
        with self._store.lock:
            if self._store.current_task().is_empty() or self.is_resting():
                return False
            started_at = self._clock()
            self._store.set_rest_start_time(started_at)
            self._arm(started_at, self.budget_ms)
        logger.info("Rest started at %s for %s ms", started_at, self.budget_ms)
        return True

    def stop_task_rest(self) -> int:
        """Close the window early, crediting the time actually rested."""
        with self._store.lock:
            credited = self._close_window(credit_full=False)
            snapshot = CurrentTaskSnapshot.of(self._store.current_task())
        if credited and self._broadcaster is not None:
            self._broadcaster.state_changed(snapshot)
        return credited

    def settle(self) -> int:
        """Close any open window before the active task's interval ends."""
        with self._store.lock:
            return self._close_window(credit_full=False)

    def expire_due(self) -> bool:
        """Finish the window if its wall-clock deadline has passed."""
        with self._store.lock:
            started_at = self._store.rest_start_time()
            if started_at <= 0 or self._clock() < started_at + self.budget_ms:
                return False
            self._finish()
        return True

    def resume(self) -> None:
        """Re-arm or finish a window that survived a restart."""
        with self._store.lock:
            started_at = self._store.rest_start_time()
            if started_at <= 0:
                return
            if self.expire_due():
                return
            remaining = started_at + self.budget_ms - self._clock()
            self._arm(started_at, remaining)
        logger.info("Resumed rest window started at %s, %s ms left", started_at, remaining)

    def close(self) -> None:
        self._cancel_timer()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _close_window(self, *, credit_full: bool) -> int:
        started_at = self._store.rest_start_time()
        if started_at <= 0:
            return 0
        if credit_full:
            credited = self.budget_ms
        else:
            credited = min(max(self._clock() - started_at, 0), self.budget_ms)
        # accounting and window flip commit together
        self._store.add_rest_time(credited, also={REST_START_TIME: 0})
        self._cancel_timer()
        logger.info("Rest window closed, %s ms credited", credited)
        return credited

    def _finish(self) -> None:
        self._close_window(credit_full=True)
        if self._broadcaster is not None:
            self._broadcaster.rest_finished(CurrentTaskSnapshot.of(self._store.current_task()))

    def _on_timer(self, expected_started_at: int) -> None:
        with self._store.lock:
            if self._store.rest_start_time() != expected_started_at:
                return
            self._timer = None
            self._finish()

    def _arm(self, started_at: int, delay_ms: int) -> None:
        self._cancel_timer()
        if not self._enable_timers:
            return
        self._timer = Timer(max(delay_ms, 0) / 1000, self._on_timer, args=(started_at,))
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


__all__ = ["RestStatus", "RestTracker"]
