# todosync/storage/db.py
from __future__ import annotations

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.todo  # noqa: F401
from storage import migrations


def create_local_engine(url: str | None = None):
    """Engine for the local cache; ``sqlite://`` gives a shared in-memory database."""

    url = url or f"sqlite:///{DB_PATH.as_posix()}"
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=False, connect_args={"check_same_thread": False})


_engine = None


def get_engine():
    global _engine
    if _engine is None:
        _engine = create_local_engine()
    return _engine


def init_db(engine=None):
    actual_engine = engine or get_engine()
    if engine is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(actual_engine)
    migrations.run_all(actual_engine)
    return actual_engine


def get_session() -> Session:
    return Session(get_engine())


def session_factory_for(engine):
    def factory() -> Session:
        return Session(engine)

    return factory


__all__ = ["create_local_engine", "get_engine", "get_session", "init_db", "session_factory_for"]
