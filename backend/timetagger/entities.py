"""Domain records for the task log."""

from __future__ import annotations

from dataclasses import dataclass

NO_PRIORITY = -1


@dataclass(frozen=True, slots=True)
class Event:
    """A single logged transition: a task start or a terminator."""

    timestamp: int
    tag: str
    priority: int
    rest_time: int = 0

    @classmethod
    def terminator(cls, timestamp: int) -> "Event":
        return cls(timestamp=timestamp, tag="", priority=NO_PRIORITY)

    @property
    def is_terminator(self) -> bool:
        return not self.tag or self.priority < 0


@dataclass(frozen=True, slots=True)
class CurrentTask:
    """The task being worked on right now."""

    priority: int
    tag: str
    rest_time: int = 0

    @classmethod
    def empty(cls) -> "CurrentTask":
        return cls(NO_PRIORITY, "", 0)

    def is_empty(self) -> bool:
        return not self.tag or self.priority < 0


@dataclass(frozen=True, slots=True)
class PendingTask:
    """A deferred task waiting to be promoted."""

    priority: int
    tag: str
    add_time: int

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.priority, self.add_time)


@dataclass(frozen=True, slots=True)
class SuggestedTask:
    priority: int
    tag: str

    @classmethod
    def empty(cls) -> "SuggestedTask":
        return cls(NO_PRIORITY, "")

    def is_empty(self) -> bool:
        return not self.tag or self.priority < 0


@dataclass(frozen=True, slots=True)
class TimeRecord:
    """A closed interval ``[start, end)`` derived from consecutive events."""

    start: int
    end: int
    tag: str
    priority: int
    rest_time: int = 0

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True, slots=True)
class CurrentTaskSnapshot:
    """Minimal read-only view of the current task for other surfaces."""

    priority: int
    tag: str
    rest_time: int

    @classmethod
    def of(cls, task: CurrentTask) -> "CurrentTaskSnapshot":
        return cls(task.priority, task.tag, task.rest_time)


__all__ = [
    "NO_PRIORITY",
    "CurrentTask",
    "CurrentTaskSnapshot",
    "Event",
    "PendingTask",
    "SuggestedTask",
    "TimeRecord",
]
