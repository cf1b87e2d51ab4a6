"""Ad-hoc database migrations for the local cache."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_todo_columns(conn) -> None:
    columns = {
        "remote_id": "TEXT",
        "completed": "INTEGER NOT NULL DEFAULT 0",
        "dirty": "INTEGER NOT NULL DEFAULT 0",
        "tombstoned": "INTEGER NOT NULL DEFAULT 0",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "todos", name):
            conn.execute(text(f"ALTER TABLE todos ADD COLUMN {name} {ddl_type}"))


def ensure_todo_indexes(conn) -> None:
    conn.execute(
        text("CREATE UNIQUE INDEX IF NOT EXISTS ix_todos_remote_id ON todos (remote_id)")
    )
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_todos_dirty ON todos (dirty)"))


def run_all(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    with engine.begin() as conn:
        ensure_todo_columns(conn)
        ensure_todo_indexes(conn)


__all__ = ["run_all"]
