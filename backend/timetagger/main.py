from __future__ import annotations

import datetime as dt
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status

from .config import settings
from .engine import TimeTagger, build_tagger
from .entities import CurrentTask, PendingTask, TimeRecord
from .logging_setup import configure_logging
from .schemas import (
    AddTaskResponse,
    CompleteTaskResponse,
    CurrentTaskResponse,
    ExportRequest,
    ExportResponse,
    PendingStartResponse,
    PendingTaskModel,
    PendingTaskRequest,
    RenameRequest,
    RestStatusResponse,
    RestStopResponse,
    SnapshotResponse,
    SuggestedTaskResponse,
    TaskRequest,
    TimelineResponse,
    TimeRecordResponse,
)
from .timeline import total_duration, total_rest

configure_logging(settings.log_level, settings.log_file)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    tagger: TimeTagger = app.state.tagger
    tagger.activate()
    try:
        yield
    finally:
        tagger.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.tagger = build_tagger(settings)


def get_tagger(request: Request) -> TimeTagger:
    return request.app.state.tagger


def _current(task: CurrentTask) -> CurrentTaskResponse:
    return CurrentTaskResponse(
        priority=task.priority,
        tag=task.tag,
        rest_time=task.rest_time,
        active=not task.is_empty(),
    )


def _rest_status(tagger: TimeTagger) -> RestStatusResponse:
    return RestStatusResponse.model_validate(tagger.rest_status())


def _timeline(day: dt.date, records: List[TimeRecord]) -> TimelineResponse:
    return TimelineResponse(
        day=day,
        records=[TimeRecordResponse.model_validate(record) for record in records],
        total_duration=total_duration(records),
        total_rest=total_rest(records),
    )


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/tasks/current", response_model=CurrentTaskResponse)
def tasks_current(tagger: TimeTagger = Depends(get_tagger)) -> CurrentTaskResponse:
    return _current(tagger.current_task())


@app.post("/tasks", response_model=AddTaskResponse)
def tasks_add(payload: TaskRequest, tagger: TimeTagger = Depends(get_tagger)) -> AddTaskResponse:
    try:
        started = tagger.add_task(payload.priority, payload.tag)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return AddTaskResponse(
        started=started,
        current=_current(tagger.current_task()),
        pending_count=tagger.get_pending_task_count(),
    )


@app.post("/tasks/start", response_model=CurrentTaskResponse)
def tasks_start(payload: TaskRequest, tagger: TimeTagger = Depends(get_tagger)) -> CurrentTaskResponse:
    try:
        tagger.start_task(payload.priority, payload.tag)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _current(tagger.current_task())


@app.post("/tasks/complete", response_model=CompleteTaskResponse)
def tasks_complete(tagger: TimeTagger = Depends(get_tagger)) -> CompleteTaskResponse:
    completed = tagger.complete_task()
    return CompleteTaskResponse(completed=completed, current=_current(tagger.current_task()))


@app.patch("/tasks/current", response_model=CurrentTaskResponse)
def tasks_rename(payload: RenameRequest, tagger: TimeTagger = Depends(get_tagger)) -> CurrentTaskResponse:
    if not tagger.update_current_task_tag(payload.tag):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No active task")
    return _current(tagger.current_task())


@app.get("/tasks/pending", response_model=list[PendingTaskModel])
def tasks_pending(tagger: TimeTagger = Depends(get_tagger)) -> list[PendingTaskModel]:
    return [PendingTaskModel.model_validate(task) for task in tagger.pending_tasks()]


@app.get("/tasks/pending/suggested", response_model=Optional[SuggestedTaskResponse])
def tasks_suggested(tagger: TimeTagger = Depends(get_tagger)) -> Optional[SuggestedTaskResponse]:
    suggested = tagger.get_suggested_task()
    if suggested.is_empty():
        return None
    return SuggestedTaskResponse.model_validate(suggested)


@app.post("/tasks/pending/start-first", response_model=PendingStartResponse)
def tasks_start_first(tagger: TimeTagger = Depends(get_tagger)) -> PendingStartResponse:
    started = tagger.start_first_pending_task()
    return PendingStartResponse(
        started=PendingTaskModel.model_validate(started) if started else None,
        current=_current(tagger.current_task()),
    )


@app.post("/tasks/pending/start", response_model=PendingStartResponse)
def tasks_start_pending(payload: PendingTaskRequest, tagger: TimeTagger = Depends(get_tagger)) -> PendingStartResponse:
    entry = PendingTask(payload.priority, payload.tag, payload.add_time)
    if not tagger.start_pending_task(entry):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pending task not found")
    return PendingStartResponse(
        started=PendingTaskModel.model_validate(entry),
        current=_current(tagger.current_task()),
    )


@app.delete("/tasks/pending", status_code=status.HTTP_204_NO_CONTENT)
def tasks_remove_pending(payload: PendingTaskRequest, tagger: TimeTagger = Depends(get_tagger)) -> None:
    entry = PendingTask(payload.priority, payload.tag, payload.add_time)
    if not tagger.remove_pending_task(entry):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pending task not found")


@app.post("/rest/start", response_model=RestStatusResponse)
def rest_start(tagger: TimeTagger = Depends(get_tagger)) -> RestStatusResponse:
    if not tagger.start_task_rest():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Rest not available")
    return _rest_status(tagger)


@app.post("/rest/stop", response_model=RestStopResponse)
def rest_stop(tagger: TimeTagger = Depends(get_tagger)) -> RestStopResponse:
    credited = tagger.stop_task_rest()
    return RestStopResponse(credited_ms=credited, status=_rest_status(tagger))


@app.get("/rest", response_model=RestStatusResponse)
def rest_status(tagger: TimeTagger = Depends(get_tagger)) -> RestStatusResponse:
    return _rest_status(tagger)


@app.get("/timeline/today", response_model=TimelineResponse)
def timeline_today(tagger: TimeTagger = Depends(get_tagger)) -> TimelineResponse:
    records = tagger.today_records()
    return _timeline(dt.date.fromisoformat(tagger.today()), records)


@app.get("/timeline/{day}", response_model=TimelineResponse)
def timeline_day(day: dt.date, tagger: TimeTagger = Depends(get_tagger)) -> TimelineResponse:
    return _timeline(day, tagger.records_for(day.isoformat()))


@app.get("/snapshot", response_model=SnapshotResponse)
def snapshot(tagger: TimeTagger = Depends(get_tagger)) -> SnapshotResponse:
    suggested = tagger.get_suggested_task()
    return SnapshotResponse(
        day=dt.date.fromisoformat(tagger.today()),
        current=_current(tagger.current_task()),
        pending=[PendingTaskModel.model_validate(task) for task in tagger.pending_tasks()],
        suggested=None if suggested.is_empty() else SuggestedTaskResponse.model_validate(suggested),
        rest=_rest_status(tagger),
    )


@app.post("/exports", response_model=ExportResponse, status_code=status.HTTP_201_CREATED)
def exports_create(payload: ExportRequest, tagger: TimeTagger = Depends(get_tagger)) -> ExportResponse:
    result = tagger.export_day(payload.day.isoformat(), payload.format)
    if not result.ok or result.path is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.error)
    return ExportResponse(day=payload.day, format=result.format, path=str(result.path), checksum=result.checksum)
