from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_tag(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("tag must not be empty")
    return cleaned


class TaskRequest(BaseModel):
    priority: int = Field(ge=0)
    tag: str

    @field_validator("tag")
    @classmethod
    def _validate_tag(cls, value: str) -> str:
        return _clean_tag(value)


class PendingTaskRequest(BaseModel):
    priority: int = Field(ge=0)
    tag: str
    add_time: int = Field(ge=0)


class RenameRequest(BaseModel):
    tag: str

    @field_validator("tag")
    @classmethod
    def _validate_tag(cls, value: str) -> str:
        return _clean_tag(value)


class CurrentTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    priority: int
    tag: str
    rest_time: int
    active: bool = True


class AddTaskResponse(BaseModel):
    started: bool
    current: CurrentTaskResponse
    pending_count: int


class CompleteTaskResponse(BaseModel):
    completed: bool
    current: CurrentTaskResponse


class PendingTaskModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    priority: int
    tag: str
    add_time: int


class PendingStartResponse(BaseModel):
    started: Optional[PendingTaskModel] = None
    current: CurrentTaskResponse


class SuggestedTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    priority: int
    tag: str


class TimeRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    start: int
    end: int
    duration: int
    tag: str
    priority: int
    rest_time: int


class TimelineResponse(BaseModel):
    day: dt.date
    records: List[TimeRecordResponse]
    total_duration: int
    total_rest: int


class RestStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    resting: bool
    started_at: int
    remaining_ms: int
    budget_ms: int
    rest_time: int


class RestStopResponse(BaseModel):
    credited_ms: int
    status: RestStatusResponse


class SnapshotResponse(BaseModel):
    day: dt.date
    current: CurrentTaskResponse
    pending: List[PendingTaskModel]
    suggested: Optional[SuggestedTaskResponse]
    rest: RestStatusResponse


class ExportRequest(BaseModel):
    day: dt.date
    format: Literal["txt", "csv", "json", "xlsx", "pdf"] = "txt"


class ExportResponse(BaseModel):
    day: dt.date
    format: str
    path: str
    checksum: Optional[str] = None
