"""Local cache operations used by the synchronizer."""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from core.errors import LocalStoreError
from models.todo import Todo
from storage.db import get_session

# (text, completed, tombstoned) as sent to the remote
PushedValues = Tuple[str, bool, bool]


def pushed_values(todo: Todo) -> PushedValues:
    return (todo.text, bool(todo.completed), bool(todo.tombstoned))


class LocalStore(ABC):
    """What a sync round needs from the local cache."""

    @abstractmethod
    def list_sync_candidates(self) -> List[Todo]:
        """Rows with ``remote_id`` unset or ``dirty`` set, in no particular order."""

    @abstractmethod
    def list_all(self) -> List[Todo]:
        """Visible rows, newest first."""

    @abstractmethod
    def apply_remote_assignment(
        self, local_id: int, remote_id: str, pushed: Optional[PushedValues] = None
    ) -> None:
        """Record ``remote_id``; the row stays dirty if it no longer matches ``pushed``."""

    @abstractmethod
    def clear_dirty(self, local_id: int, pushed: Optional[PushedValues] = None) -> None:
        """Clear ``dirty`` unless the row changed since ``pushed`` was read."""

    @abstractmethod
    def erase_local(self, local_id: int) -> None:
        ...

    @abstractmethod
    def upsert_from_remote(self, remote_id: str, text: str, completed: bool) -> bool:
        """Insert or refresh the row for ``remote_id``; True if the cache changed."""

    @abstractmethod
    def delete_where_remote_id_not_in(
        self, remote_ids: Iterable[str], only_if_clean: bool = True
    ) -> int:
        """Drop pushed rows the remote no longer has; returns the number removed."""

    @abstractmethod
    def count_pending(self) -> int:
        ...


class SqlTodoStore(LocalStore):
    """:class:`LocalStore` over the SQLModel ``todos`` table."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise LocalStoreError(f"Local store failure: {exc}") from exc

    # ----- reads -----
    def list_sync_candidates(self) -> List[Todo]:
        with self._session() as session:
            stmt = select(Todo).where(
                or_(col(Todo.remote_id).is_(None), col(Todo.dirty).is_(True))
            )
            return list(session.exec(stmt))

    def list_all(self) -> List[Todo]:
        with self._session() as session:
            stmt = (
                select(Todo)
                .where(col(Todo.tombstoned).is_(False))
                .order_by(col(Todo.created_at).desc(), col(Todo.local_id).desc())
            )
            return list(session.exec(stmt))

    def count_pending(self) -> int:
        with self._session() as session:
            stmt = (
                select(func.count())
                .select_from(Todo)
                .where(or_(col(Todo.remote_id).is_(None), col(Todo.dirty).is_(True)))
            )
            return int(session.exec(stmt).one())

    # ----- push bookkeeping -----
    def apply_remote_assignment(
        self, local_id: int, remote_id: str, pushed: Optional[PushedValues] = None
    ) -> None:
        with self._session() as session:
            # a row erased while the insert was in flight matches nothing
            conn = session.connection()
            conn.execute(
                update(Todo).where(col(Todo.local_id) == local_id).values(remote_id=remote_id)
            )
            conn.execute(self._clear_dirty_stmt(local_id, pushed))
            session.commit()

    def clear_dirty(self, local_id: int, pushed: Optional[PushedValues] = None) -> None:
        with self._session() as session:
            session.connection().execute(self._clear_dirty_stmt(local_id, pushed))
            session.commit()

    @staticmethod
    def _clear_dirty_stmt(local_id: int, pushed: Optional[PushedValues]):
        # single conditional UPDATE, so an edit committed meanwhile keeps the row dirty
        stmt = update(Todo).where(col(Todo.local_id) == local_id, col(Todo.dirty).is_(True))
        if pushed is not None:
            text, completed, tombstoned = pushed
            stmt = stmt.where(
                col(Todo.text) == text,
                col(Todo.completed).is_(bool(completed)),
                col(Todo.tombstoned).is_(bool(tombstoned)),
            )
        return stmt.values(dirty=False)

    def erase_local(self, local_id: int) -> None:
        with self._session() as session:
            row = session.get(Todo, local_id)
            if row is not None:
                session.delete(row)
                session.commit()

    # ----- pull reconciliation -----
    def upsert_from_remote(self, remote_id: str, text: str, completed: bool) -> bool:
        completed = bool(completed)
        with self._session() as session:
            row = session.exec(select(Todo).where(Todo.remote_id == remote_id)).first()
            if row is None:
                session.add(
                    Todo(
                        remote_id=remote_id,
                        text=text,
                        completed=completed,
                        dirty=False,
                        tombstoned=False,
                    )
                )
                session.commit()
                return True
            if row.dirty:
                # pending local edit wins until it is pushed
                return False
            if row.text == text and row.completed == completed:
                return False
            result = session.connection().execute(
                update(Todo)
                .where(col(Todo.local_id) == row.local_id, col(Todo.dirty).is_(False))
                .values(text=text, completed=completed)
            )
            session.commit()
            return result.rowcount > 0

    def delete_where_remote_id_not_in(
        self, remote_ids: Iterable[str], only_if_clean: bool = True
    ) -> int:
        keep = set(remote_ids)
        with self._session() as session:
            stmt = select(Todo).where(col(Todo.remote_id).is_not(None))
            if keep:
                stmt = stmt.where(col(Todo.remote_id).not_in(keep))
            if only_if_clean:
                stmt = stmt.where(col(Todo.dirty).is_(False))
            rows = list(session.exec(stmt))
            for row in rows:
                session.delete(row)
            if rows:
                session.commit()
            return len(rows)


__all__ = ["LocalStore", "PushedValues", "SqlTodoStore", "pushed_values"]
