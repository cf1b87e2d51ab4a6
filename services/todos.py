# todosync/services/todos.py
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlmodel import Session

from models.todo import Todo
from services.local_store import SqlTodoStore
from storage.db import get_session

logger = logging.getLogger("todosync.todos")

Listener = Callable[[int], None]


class TodoService:
    """Local edits made by callers. Every edit marks the row dirty for the next round."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory
        self._store = SqlTodoStore(session_factory)
        self._listeners: List[Listener] = []

    def subscribe(self, callback: Listener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, local_id: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(local_id)
            except Exception:
                logger.exception("Change listener failed for todo %s", local_id)

    # ----- reads -----
    def get(self, local_id: int) -> Optional[Todo]:
        with self._session_factory() as s:
            return s.get(Todo, local_id)

    def list_all(self) -> List[Todo]:
        return self._store.list_all()

    # ----- writes -----
    def add(self, text: str) -> Todo:
        value = (text or "").strip()
        if not value:
            raise ValueError("Todo text must not be empty")
        with self._session_factory() as s:
            t = Todo(text=value, dirty=True)
            s.add(t)
            s.commit()
            s.refresh(t)
        self._emit(t.local_id)
        return t

    def toggle(self, local_id: int) -> Optional[Todo]:
        return self._mutate(local_id, lambda t: setattr(t, "completed", not t.completed))

    def rename(self, local_id: int, text: str) -> Optional[Todo]:
        value = (text or "").strip()
        if not value:
            raise ValueError("Todo text must not be empty")
        return self._mutate(local_id, lambda t: setattr(t, "text", value))

    def delete(self, local_id: int) -> Optional[Todo]:
        return self._mutate(local_id, lambda t: setattr(t, "tombstoned", True))

    def _mutate(self, local_id: int, change: Callable[[Todo], None]) -> Optional[Todo]:
        with self._session_factory() as s:
            t = s.get(Todo, local_id)
            if not t or t.tombstoned:
                return None
            change(t)
            t.dirty = True
            s.add(t)
            s.commit()
            s.refresh(t)
        self._emit(local_id)
        return t


__all__ = ["TodoService"]
