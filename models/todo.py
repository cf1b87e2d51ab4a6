# todosync/models/todo.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Todo(SQLModel, table=True):
    """A task row of the local cache.

    ``remote_id`` is ``None`` until the first successful push and never changes
    afterwards. ``dirty`` marks local edits that the remote has not seen yet;
    ``tombstoned`` hides the row from callers until the delete is propagated.
    """

    __tablename__ = "todos"
    __table_args__ = {"sqlite_autoincrement": True}

    local_id: Optional[int] = Field(default=None, primary_key=True)
    remote_id: Optional[str] = Field(default=None, unique=True, index=True)
    text: str
    completed: bool = False
    dirty: bool = Field(default=False, index=True)
    tombstoned: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


__all__ = ["Todo"]
