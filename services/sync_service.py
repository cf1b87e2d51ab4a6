from __future__ import annotations
import logging
import threading
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from core.errors import (
    LocalStoreError,
    PullFailedError,
    RemoteError,
    RemoteNotFound,
    SyncInProgressError,
)
from core.settings import SYNC, SYNC_LOG_PATH
from models.sync_summary import PushFailure, SyncSummary
from models.todo import Todo
from services.local_store import LocalStore, pushed_values
from services.remote_store import RemoteStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_logger(path: Path = SYNC_LOG_PATH) -> logging.Logger:
    logger = logging.getLogger("todosync")
    if not logger.handlers:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=SYNC.log_max_bytes,
            backupCount=SYNC.log_backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logging.getLogger("todosync.sync")


class SyncService:
    """Runs push-then-pull rounds between a local cache and the remote authority."""

    def __init__(self, local: LocalStore, remote: RemoteStore) -> None:
        self.local = local
        self.remote = remote
        self.logger = _ensure_logger()
        self.last_summary: Optional[SyncSummary] = None
        self.last_success_at: Optional[datetime] = None
        self.last_error: Optional[Exception] = None
        self._round_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    def run(self) -> SyncSummary:
        if not self._round_lock.acquire(blocking=False):
            raise SyncInProgressError("A sync round is already running")
        try:
            summary = self._run_round()
        except (LocalStoreError, PullFailedError) as exc:
            self.last_error = exc
            self.logger.error("Sync round failed: %s", exc)
            raise
        finally:
            self._round_lock.release()

        self.last_summary = summary
        self.last_error = None
        self.last_success_at = summary.finished_at
        self.logger.info("Sync round finished: %s", summary.describe())
        return summary

    def status(self) -> dict:
        summary = self.last_summary
        return {
            "lastSummary": summary.as_dict() if summary else None,
            "lastSuccessAt": self.last_success_at.isoformat() if self.last_success_at else None,
            "lastError": str(self.last_error) if self.last_error else None,
            "pending": self.local.count_pending(),
        }

    # ------------------------------------------------------------------
    def _run_round(self) -> SyncSummary:
        summary = SyncSummary(started_at=_utcnow())

        candidates = self.local.list_sync_candidates()
        self.logger.debug("Push phase: %d candidate(s)", len(candidates))
        for todo in candidates:
            self._push_one(todo, summary)

        self._pull(summary)
        summary.finished_at = _utcnow()
        return summary

    # ------------------------------------------------------------------
    # Push helpers
    def _push_one(self, todo: Todo, summary: SyncSummary) -> None:
        if todo.tombstoned:
            operation = "delete"
        elif todo.remote_id is None:
            operation = "insert"
        else:
            operation = "update"

        try:
            if operation == "delete":
                self._push_delete(todo, summary)
            elif operation == "insert":
                remote_id = self.remote.insert(todo.text, todo.completed)
                self.local.apply_remote_assignment(todo.local_id, remote_id, pushed_values(todo))
                summary.pushed_inserts += 1
            else:
                self._push_update(todo)
                summary.pushed_updates += 1
        except RemoteError as exc:
            self.logger.warning("Push %s of todo %s failed: %s", operation, todo.local_id, exc)
            summary.failures.append(PushFailure(todo.local_id, operation, exc))

    def _push_delete(self, todo: Todo, summary: SyncSummary) -> None:
        if todo.remote_id is None:
            self.local.erase_local(todo.local_id)
            summary.discarded_local += 1
            return
        try:
            self.remote.delete(todo.remote_id)
        except RemoteNotFound:
            pass
        self.local.erase_local(todo.local_id)
        summary.pushed_deletes += 1

    def _push_update(self, todo: Todo) -> None:
        try:
            self.remote.update(todo.remote_id, todo.text, todo.completed)
        except RemoteNotFound:
            # the pull below drops the orphan once it is clean
            self.logger.info("Remote %s vanished before update of todo %s", todo.remote_id, todo.local_id)
        self.local.clear_dirty(todo.local_id, pushed_values(todo))

    # ------------------------------------------------------------------
    # Pull helpers
    def _pull(self, summary: SyncSummary) -> None:
        try:
            snapshot = self.remote.list_all()
        except RemoteError as exc:
            raise PullFailedError(f"Remote snapshot failed: {exc}", summary.failures) from exc

        summary.pulled_deletes = self.local.delete_where_remote_id_not_in(
            [row.id for row in snapshot], only_if_clean=True
        )
        for row in snapshot:
            if self.local.upsert_from_remote(row.id, row.text, row.completed):
                summary.pulled_upserts += 1


def read_sync_log(lines: int = 100, path: Path = SYNC_LOG_PATH) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            content = fh.readlines()
    except FileNotFoundError:
        return "Sync log has not been created yet."
    content = [line.rstrip("\n") for line in content[-lines:]]
    return "\n".join(content)


__all__ = ["SyncService", "read_sync_log"]
