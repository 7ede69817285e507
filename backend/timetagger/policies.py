"""Business-rule variants for task interruption and completion."""

from __future__ import annotations

from enum import Enum


class InterruptPolicy(str, Enum):
    """Decides whether an incoming task interrupts the active one.

    Priorities are ordinals: a smaller value is more urgent.
    """

    STRICT = "strict"
    INCLUSIVE = "inclusive"

    def should_interrupt(self, incoming: int, current: int) -> bool:
        if current < 0:
            return True
        if self is InterruptPolicy.STRICT:
            return incoming < current
        return incoming <= current


class CompletionPolicy(str, Enum):
    """What happens to the pending queue when the active task completes."""

    MANUAL_PICK = "manual_pick"
    AUTO_DEQUEUE = "auto_dequeue"

    @property
    def auto_starts_next(self) -> bool:
        return self is CompletionPolicy.AUTO_DEQUEUE


__all__ = ["CompletionPolicy", "InterruptPolicy"]
