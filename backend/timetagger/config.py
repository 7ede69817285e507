from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .policies import CompletionPolicy, InterruptPolicy


DEFAULT_PRIORITY_LABELS: Dict[int, str] = {
    0: "P0-Urgent",
    1: "P1-Core",
    2: "P2-Short-term",
    3: "P3-Later",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    """Application runtime configuration."""

    app_name: str = "TimeTagger"
    host: str = os.getenv("TT_HOST", "127.0.0.1")
    port: int = int(os.getenv("TT_PORT", "8080"))

    sqlite_path: Path = Path(os.getenv("TT_SQLITE_PATH", "./data/timetagger.db"))
    export_dir: Path = Path(os.getenv("TT_EXPORT_DIR", "./data/exports"))
    mirror_path: Path = Path(os.getenv("TT_MIRROR_PATH", "./data/current_task.txt"))

    timezone: str = os.getenv("TT_TIMEZONE", "UTC")
    log_level: str = os.getenv("TT_LOG_LEVEL", "INFO")
    log_file: Optional[Path] = Path(os.environ["TT_LOG_FILE"]) if os.getenv("TT_LOG_FILE") else None

    rest_duration_ms: int = int(os.getenv("TT_REST_DURATION_MS", str(5 * 60 * 1000)))
    timeline_cache_ttl_ms: int = int(os.getenv("TT_TIMELINE_CACHE_TTL_MS", "5000"))
    min_record_ms: int = int(os.getenv("TT_MIN_RECORD_MS", "60000"))
    cache_enabled: bool = os.getenv("TT_CACHE_ENABLED", "true").lower() == "true"

    interrupt_policy: InterruptPolicy = InterruptPolicy(os.getenv("TT_INTERRUPT_POLICY", "strict"))
    completion_policy: CompletionPolicy = CompletionPolicy(os.getenv("TT_COMPLETION_POLICY", "manual_pick"))

    priority_labels: Dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_PRIORITY_LABELS))

    @field_validator("rest_duration_ms", "min_record_ms")
    @classmethod
    def _positive_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("duration must be positive")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @field_validator("timeline_cache_ttl_ms")
    @classmethod
    def _non_negative_ttl(cls, value: int) -> int:
        return max(0, value)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def priority_label(self, priority: int) -> str:
        return self.priority_labels.get(priority, f"P{priority}" if priority >= 0 else "Unassigned")


settings = Settings()

# Ensure essential directories exist
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
settings.export_dir.mkdir(parents=True, exist_ok=True)
