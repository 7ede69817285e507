from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Callable, Generator

# Keep the module-level application state out of the working tree.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="timetagger-tests-"))
os.environ.setdefault("TT_SQLITE_PATH", str(_RUNTIME_DIR / "app.db"))
os.environ.setdefault("TT_EXPORT_DIR", str(_RUNTIME_DIR / "exports"))
os.environ.setdefault("TT_MIRROR_PATH", str(_RUNTIME_DIR / "current_task.txt"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from timetagger.config import Settings
from timetagger.database import build_engine, build_session_factory
from timetagger.engine import TimeTagger
from timetagger.main import app
from timetagger.notifications import BackgroundDispatcher
from timetagger.store import Store

from helpers import UTC, FakeClock


@pytest.fixture()
def app_settings(tmp_path: Path) -> Settings:
    return Settings(
        sqlite_path=tmp_path / "test.db",
        export_dir=tmp_path / "exports",
        mirror_path=tmp_path / "mirror" / "current_task.txt",
        timezone="UTC",
        rest_duration_ms=5 * 60 * 1000,
        timeline_cache_ttl_ms=5000,
        min_record_ms=60000,
        cache_enabled=True,
    )


@pytest.fixture()
def session_factory(app_settings: Settings) -> Generator[sessionmaker, None, None]:
    engine = build_engine(app_settings.sqlite_path)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2024, 1, 1, 9, 0, tzinfo=UTC))


@pytest.fixture()
def dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher(synchronous=True)


@pytest.fixture()
def store(session_factory: sessionmaker) -> Store:
    return Store(session_factory)


@pytest.fixture()
def make_tagger(
    app_settings: Settings,
    session_factory: sessionmaker,
    clock: FakeClock,
    dispatcher: BackgroundDispatcher,
) -> Generator[Callable[..., TimeTagger], None, None]:
    """Build engines over the same database, optionally with setting overrides."""
    created: list[TimeTagger] = []

    def factory(enable_timers: bool = False, **overrides) -> TimeTagger:
        config = app_settings.model_copy(update=overrides) if overrides else app_settings
        tagger = TimeTagger(
            config,
            session_factory,
            clock=clock,
            dispatcher=dispatcher,
            enable_timers=enable_timers,
        )
        created.append(tagger)
        return tagger

    yield factory
    for tagger in created:
        tagger.close()


@pytest.fixture()
def tagger(make_tagger: Callable[..., TimeTagger]) -> TimeTagger:
    tagger = make_tagger()
    tagger.activate()
    return tagger


@pytest.fixture()
def client(tagger: TimeTagger) -> Generator[TestClient, None, None]:
    original = app.state.tagger
    app.state.tagger = tagger
    with TestClient(app) as c:
        yield c
    app.state.tagger = original
