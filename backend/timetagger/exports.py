"""Renderings of a finalised day log.

The exporter is a collaborator of the core: it only reads events through the
store, and it reports failures through :class:`ExportResult` instead of raising.
"""

from __future__ import annotations

import csv
import hashlib
import io
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from openpyxl import Workbook
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .database import SessionFactory, db_session
from .entities import TimeRecord
from .models import ExportRecord
from .store import Store
from .timeline import derive_timeline
from .utils import day_bounds, format_clock, format_duration

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("txt", "csv", "json", "xlsx", "pdf")

ERROR_EMPTY = "empty"
ERROR_UNSUPPORTED = "unsupported_format"
ERROR_IO = "io"
ERROR_STORAGE = "storage"


@dataclass(frozen=True)
class ExportResult:
    day: str
    format: str
    path: Optional[Path] = None
    checksum: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _checksum_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


class LogExporter:
    def __init__(
        self,
        store: Store,
        config: Settings,
        *,
        session_factory: Optional[SessionFactory] = None,
        records_for: Optional[Callable[[str], List[TimeRecord]]] = None,
    ) -> None:
        self._store = store
        self._config = config
        self._tz = config.tz
        self._session_factory = session_factory
        self._records_for = records_for or self._finalised_records

    @property
    def export_dir(self) -> Path:
        return self._config.export_dir

    def _finalised_records(self, day: str) -> List[TimeRecord]:
        _, day_end = day_bounds(day, self._tz)
        events = self._store.get_events_for_date(day)
        return derive_timeline(events, False, 0, min_duration_ms=self._config.min_record_ms, day_end=day_end)

    # ------------------------------------------------------------------
    # Renderers
    # ------------------------------------------------------------------
    def render_text(self, day: str, records: List[TimeRecord]) -> str:
        lines = [f"=== Time log {day} ===", ""]
        for record in records:
            lines.append(
                f"{format_clock(record.start, self._tz)} - {format_clock(record.end, self._tz)} "
                f"({format_duration(record.duration)})"
            )
            label = f"[{self._config.priority_label(record.priority)}] {record.tag}"
            if record.rest_time:
                label += f" (rest {format_duration(record.rest_time)})"
            lines.append(label)
            lines.append("")
        return "\n".join(lines)

    def render_csv(self, day: str, records: List[TimeRecord]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["date", "start", "end", "duration_min", "tag", "priority", "rest_min"])
        for record in records:
            writer.writerow(
                [
                    day,
                    format_clock(record.start, self._tz),
                    format_clock(record.end, self._tz),
                    record.duration // 60000,
                    record.tag,
                    f"P{record.priority}",
                    record.rest_time // 60000,
                ]
            )
        return buffer.getvalue()

    def render_json(self, day: str, records: List[TimeRecord]) -> str:
        payload = {
            "date": day,
            "records": [
                {
                    "start": record.start,
                    "end": record.end,
                    "duration": record.duration,
                    "tag": record.tag,
                    "priority": record.priority,
                    "restTime": record.rest_time,
                }
                for record in records
            ],
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)

    def write_xlsx(self, path: Path, day: str, records: List[TimeRecord]) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = day
        ws.append(["Start", "End", "Duration (min)", "Tag", "Priority", "Rest (min)"])
        for record in records:
            ws.append(
                [
                    format_clock(record.start, self._tz),
                    format_clock(record.end, self._tz),
                    round(record.duration / 60000, 2),
                    record.tag,
                    self._config.priority_label(record.priority),
                    round(record.rest_time / 60000, 2),
                ]
            )
        wb.save(path)

    def write_pdf(self, path: Path, day: str, records: List[TimeRecord]) -> None:
        pdf = canvas.Canvas(str(path), pagesize=A4)
        width, height = A4
        y = height - 2 * cm
        title = f"TimeTagger log {day}"
        pdf.setTitle(title)
        pdf.setFont("Helvetica-Bold", 16)
        pdf.drawString(2 * cm, y, title)
        y -= 1 * cm
        pdf.setFont("Helvetica", 11)
        for record in records:
            line = (
                f"{format_clock(record.start, self._tz)} - {format_clock(record.end, self._tz)} "
                f"({format_duration(record.duration)}) [{self._config.priority_label(record.priority)}] {record.tag}"
            )
            pdf.drawString(2 * cm, y, line)
            y -= 0.8 * cm
            if y < 2 * cm:
                pdf.showPage()
                y = height - 2 * cm
                pdf.setFont("Helvetica", 11)
        pdf.save()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def save_daily_log(self, day: str) -> ExportResult:
        """Write the human-readable log of ``day`` to ``<export_dir>/logs``."""
        records = self._records_for(day)
        if not records:
            return ExportResult(day, "txt", error=ERROR_EMPTY)
        path = self.export_dir / "logs" / f"{day}.txt"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.render_text(day, records), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write daily log for %s: %s", day, exc)
            return ExportResult(day, "txt", error=ERROR_IO)
        logger.info("Saved daily log for %s to %s", day, path)
        return ExportResult(day, "txt", path=path)

    def export_day(self, day: str, export_format: str) -> ExportResult:
        if export_format not in EXPORT_FORMATS:
            return ExportResult(day, export_format, error=ERROR_UNSUPPORTED)
        records = self._records_for(day)
        if not records:
            return ExportResult(day, export_format, error=ERROR_EMPTY)

        path = self.export_dir / f"timetagger_{day}.{export_format}"
        text_renderers: Dict[str, Callable[[str, List[TimeRecord]], str]] = {
            "txt": self.render_text,
            "csv": self.render_csv,
            "json": self.render_json,
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if export_format in text_renderers:
                path.write_text(text_renderers[export_format](day, records), encoding="utf-8")
            elif export_format == "xlsx":
                self.write_xlsx(path, day, records)
            else:
                self.write_pdf(path, day, records)
            checksum = _checksum_file(path)
        except OSError as exc:
            logger.warning("Export of %s as %s failed: %s", day, export_format, exc)
            return ExportResult(day, export_format, error=ERROR_IO)

        if self._session_factory is not None:
            try:
                with db_session(self._session_factory) as session:
                    session.add(ExportRecord(day=day, format=export_format, path=str(path), checksum=checksum))
            except SQLAlchemyError as exc:
                logger.warning("Could not record export of %s: %s", day, exc)
                return ExportResult(day, export_format, path=path, checksum=checksum, error=ERROR_STORAGE)
        logger.info("Exported %s as %s to %s", day, export_format, path)
        return ExportResult(day, export_format, path=path, checksum=checksum)


__all__ = ["EXPORT_FORMATS", "ExportResult", "LogExporter"]
