from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .models import Base

SessionFactory = Callable[[], Session]


def build_engine(sqlite_path: Path) -> Engine:
    return create_engine(
        f"sqlite:///{sqlite_path}",
        connect_args={"check_same_thread": False},
        future=True,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    Base.metadata.create_all(bind=bind)
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


engine = build_engine(settings.sqlite_path)

SessionLocal = build_session_factory(engine)


@contextmanager
def db_session(factory: SessionFactory = SessionLocal) -> Generator[Session, None, None]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
