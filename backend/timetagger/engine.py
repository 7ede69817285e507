"""The wired-up tracking engine that the API and other surfaces talk to."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .cache import TimelineCache
from .config import Settings
from .database import SessionFactory, SessionLocal
from .entities import CurrentTask, CurrentTaskSnapshot, PendingTask, SuggestedTask, TimeRecord
from .exports import ExportResult, LogExporter
from .mirror import CurrentTaskMirror
from .notifications import BackgroundDispatcher, Broadcaster, NotificationService
from .rest import RestStatus, RestTracker
from .rollover import RolloverEngine
from .store import Store
from .tasks import TaskManager
from .utils import now_ms

logger = logging.getLogger(__name__)


class TimeTagger:
    """Owns one instance of every component, bound to the same store.

    Every mutation first finishes an overdue rest window and runs the
    day-boundary check, so an engine that was idle over midnight splits the
    running task before anything new is logged.
    """

    def __init__(
        self,
        config: Settings,
        session_factory: SessionFactory,
        *,
        clock: Optional[Callable[[], int]] = None,
        dispatcher: Optional[BackgroundDispatcher] = None,
        notifier: Optional[NotificationService] = None,
        enable_timers: bool = True,
    ) -> None:
        self.config = config
        self.clock = clock or now_ms
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.notifier = notifier or NotificationService()
        self.mirror = CurrentTaskMirror(config.mirror_path)

        self.store = Store(session_factory, cache_enabled=config.cache_enabled)
        self.timeline_cache = TimelineCache(config.timeline_cache_ttl_ms, enabled=config.cache_enabled)
        self.store.subscribe(self.timeline_cache.on_store_write)

        self.broadcaster = Broadcaster(self.dispatcher, self.notifier, self.mirror)
        self.rest = RestTracker(
            self.store,
            budget_ms=config.rest_duration_ms,
            clock=self.clock,
            broadcaster=self.broadcaster,
            enable_timers=enable_timers,
        )
        self.tasks = TaskManager(
            self.store,
            clock=self.clock,
            tz=config.tz,
            interrupt_policy=config.interrupt_policy,
            completion_policy=config.completion_policy,
            rest=self.rest,
            timeline_cache=self.timeline_cache,
            broadcaster=self.broadcaster,
            min_record_ms=config.min_record_ms,
        )
        self.exporter = LogExporter(
            self.store,
            config,
            session_factory=session_factory,
            records_for=self.tasks.records_for,
        )
        self.rollover = RolloverEngine(
            self.store,
            clock=self.clock,
            tz=config.tz,
            exporter=self.exporter,
            dispatcher=self.dispatcher,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def activate(self) -> None:
        """Bring persisted state up to date after a (re)start."""
        self.rollover.check_and_rollover()
        self.rest.resume()
        self.broadcaster.state_changed(self.tasks.snapshot())
        logger.info("Engine active, today is %s", self.rollover.today())

    def refresh(self) -> None:
        self.rest.expire_due()
        self.rollover.check_and_rollover()

    def close(self) -> None:
        self.rest.close()
        self.dispatcher.close()

    # ------------------------------------------------------------------
    # Task mutations
    # ------------------------------------------------------------------
    def add_task(self, priority: int, tag: str) -> bool:
        self.refresh()
        return self.tasks.add_task(priority, tag)

    def start_task(self, priority: int, tag: str) -> None:
        self.refresh()
        self.tasks.start_task(priority, tag)

    def complete_task(self) -> bool:
        self.refresh()
        return self.tasks.complete_task()

    def start_first_pending_task(self) -> Optional[PendingTask]:
        self.refresh()
        return self.tasks.start_first_pending_task()

    def start_pending_task(self, entry: PendingTask) -> bool:
        self.refresh()
        return self.tasks.start_pending_task(entry)

    def remove_pending_task(self, entry: PendingTask) -> bool:
        self.refresh()
        return self.tasks.remove_pending_task(entry)

    def update_current_task_tag(self, tag: str) -> bool:
        self.refresh()
        return self.tasks.update_current_task_tag(tag)

    # ------------------------------------------------------------------
    # Rest
    # ------------------------------------------------------------------
    def start_task_rest(self) -> bool:
        self.refresh()
        return self.rest.start_task_rest()

    def stop_task_rest(self) -> int:
        self.refresh()
        return self.rest.stop_task_rest()

    def rest_status(self) -> RestStatus:
        self.rest.expire_due()
        return self.rest.status()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def current_task(self) -> CurrentTask:
        return self.tasks.current_task()

    def snapshot(self) -> CurrentTaskSnapshot:
        return self.tasks.snapshot()

    def pending_tasks(self) -> List[PendingTask]:
        return self.tasks.pending_tasks()

    def get_pending_task_count(self) -> int:
        return self.tasks.get_pending_task_count()

    def get_suggested_task(self) -> SuggestedTask:
        return self.tasks.get_suggested_task()

    def today_records(self) -> List[TimeRecord]:
        self.refresh()
        return self.tasks.today_records()

    def records_for(self, day: str) -> List[TimeRecord]:
        self.refresh()
        return self.tasks.records_for(day)

    def today(self) -> str:
        return self.rollover.today()

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------
    def export_day(self, day: str, export_format: str) -> ExportResult:
        self.refresh()
        return self.exporter.export_day(day, export_format)


def build_tagger(config: Settings, session_factory: Optional[SessionFactory] = None, **kwargs) -> TimeTagger:
    return TimeTagger(config, session_factory or SessionLocal, **kwargs)


__all__ = ["TimeTagger", "build_tagger"]
