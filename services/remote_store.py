"""Remote authority interface and the SQL-backed adapter."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError

from core.errors import RemoteNotFound, RemoteRejected, RemoteUnavailable

logger = logging.getLogger("todosync.remote")


@dataclass(frozen=True)
class RemoteTodo:
    id: str
    text: str
    completed: bool


class RemoteStore(ABC):
    """Operations the synchronizer performs against the remote authority.

    Implementations raise :class:`RemoteUnavailable` for transport problems
    (timeouts included) and :class:`RemoteRejected` when a write is refused.
    ``update`` raises :class:`RemoteNotFound` for an unknown id; ``delete``
    treats an unknown id as already deleted.
    """

    @abstractmethod
    def list_all(self) -> List[RemoteTodo]:
        ...

    @abstractmethod
    def insert(self, text: str, completed: bool) -> str:
        ...

    @abstractmethod
    def update(self, remote_id: str, text: str, completed: bool) -> None:
        ...

    @abstractmethod
    def delete(self, remote_id: str) -> None:
        ...


remote_metadata = MetaData()

remote_todos = Table(
    "todos",
    remote_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("text", Text, nullable=False),
    Column("completed", Integer, nullable=False, default=0),
    sqlite_autoincrement=True,
)


def _parse_id(remote_id: str) -> Optional[int]:
    try:
        return int(remote_id)
    except (TypeError, ValueError):
        return None


class SqlRemoteStore(RemoteStore):
    """Remote ``todos`` table reached through a SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, auth_token: Optional[str] = None, **engine_kwargs) -> "SqlRemoteStore":
        connect_args: Dict[str, Any] = dict(engine_kwargs.pop("connect_args", {}) or {})
        if auth_token:
            connect_args["auth_token"] = auth_token
        engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        return cls(engine)

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            remote_metadata.create_all(conn)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except (IntegrityError, DataError) as exc:
            raise RemoteRejected(f"Remote rejected write: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise RemoteUnavailable(f"Remote store unavailable: {exc}") from exc
        except (TimeoutError, OSError) as exc:
            raise RemoteUnavailable(f"Remote store unavailable: {exc}") from exc

    def list_all(self) -> List[RemoteTodo]:
        with self._connect() as conn:
            rows = conn.execute(select(remote_todos).order_by(remote_todos.c.id)).all()
        return [
            RemoteTodo(id=str(row.id), text=row.text, completed=bool(row.completed))
            for row in rows
        ]

    def insert(self, text: str, completed: bool) -> str:
        with self._connect() as conn:
            result = conn.execute(
                insert(remote_todos).values(text=text, completed=int(bool(completed)))
            )
            new_id = result.inserted_primary_key[0]
        logger.debug("Remote insert -> %s", new_id)
        return str(new_id)

    def update(self, remote_id: str, text: str, completed: bool) -> None:
        key = _parse_id(remote_id)
        if key is None:
            raise RemoteNotFound(f"Remote row {remote_id!r} does not exist")
        with self._connect() as conn:
            result = conn.execute(
                update(remote_todos)
                .where(remote_todos.c.id == key)
                .values(text=text, completed=int(bool(completed)))
            )
        if result.rowcount == 0:
            raise RemoteNotFound(f"Remote row {remote_id!r} does not exist")

    def delete(self, remote_id: str) -> None:
        key = _parse_id(remote_id)
        if key is None:
            return
        with self._connect() as conn:
            conn.execute(delete(remote_todos).where(remote_todos.c.id == key))


__all__ = ["RemoteStore", "RemoteTodo", "SqlRemoteStore", "remote_metadata", "remote_todos"]
