"""One-way mirror of the current task for other processes.

The file holds a single line ``priority|tag|restTime``. Readers never raise;
they get a :class:`MirrorReadResult` carrying either the snapshot or the kind
of failure.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .entities import CurrentTask, CurrentTaskSnapshot

logger = logging.getLogger(__name__)

MIRROR_MISSING = "missing"
MIRROR_MALFORMED = "malformed"
MIRROR_IO = "io"


@dataclass(frozen=True)
class MirrorReadResult:
    snapshot: CurrentTaskSnapshot
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def format_snapshot(snapshot: CurrentTaskSnapshot) -> str:
    return f"{snapshot.priority}|{snapshot.tag}|{snapshot.rest_time}"


def parse_snapshot(data: str) -> Optional[CurrentTaskSnapshot]:
    head, sep, remainder = data.strip("\r\n").partition("|")
    if not sep:
        return None
    tag, sep, rest_raw = remainder.rpartition("|")
    if not sep:
        tag, rest_raw = remainder, "0"
    try:
        priority = int(head)
        rest_time = int(rest_raw or 0)
    except ValueError:
        return None
    return CurrentTaskSnapshot(priority, tag, rest_time)


class CurrentTaskMirror:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def publish(self, snapshot: CurrentTaskSnapshot) -> None:
        """Replace the mirror file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".current_task.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(format_snapshot(snapshot))
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Mirrored current task to %s", self.path)

    def read(self) -> MirrorReadResult:
        return read_mirror(self.path)


def read_mirror(path: Path) -> MirrorReadResult:
    empty = CurrentTaskSnapshot.of(CurrentTask.empty())
    path = Path(path)
    if not path.exists():
        return MirrorReadResult(empty, MIRROR_MISSING)
    try:
        data = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Could not read mirror %s: %s", path, exc)
        return MirrorReadResult(empty, MIRROR_IO)
    if not data:
        return MirrorReadResult(empty)
    snapshot = parse_snapshot(data)
    if snapshot is None:
        return MirrorReadResult(empty, MIRROR_MALFORMED)
    return MirrorReadResult(snapshot)


__all__ = ["CurrentTaskMirror", "MirrorReadResult", "format_snapshot", "parse_snapshot", "read_mirror"]
