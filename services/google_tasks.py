"""Remote store adapter backed by a Google Tasks task list."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.errors import RemoteNotFound, RemoteRejected, RemoteUnavailable
from core.settings import REMOTE, TOKEN_PATH
from services.remote_store import RemoteStore, RemoteTodo

logger = logging.getLogger("todosync.google_tasks")

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_NOT_FOUND_STATUS = {404, 410}


def _status_of(exc: HttpError) -> int:
    status = getattr(getattr(exc, "resp", None), "status", None)
    try:
        return int(status or 0)
    except (TypeError, ValueError):
        return 0


def load_credentials(token_path: str | Path = TOKEN_PATH) -> Credentials:
    """Load an already authorized token file, refreshing it when expired."""

    path = Path(token_path)
    if not path.exists():
        raise RemoteUnavailable(f"Google token not found at {path}")
    creds = Credentials.from_authorized_user_file(str(path), list(REMOTE.scopes))
    if not creds.valid and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except (RefreshError, TransportError) as exc:
            raise RemoteUnavailable(f"Google token refresh failed: {exc}") from exc
        path.write_text(creds.to_json(), encoding="utf-8")
    return creds


class GoogleTasksRemote(RemoteStore):
    def __init__(
        self,
        service=None,
        *,
        credentials=None,
        tasklist_name: str | None = None,
        max_retries: int = REMOTE.max_retries,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.service = service
        self.credentials = credentials
        self.tasklist_name = tasklist_name or REMOTE.tasklist_name
        self.tasklist_id: Optional[str] = None
        self.max_retries = max(1, max_retries)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Initialisation helpers
    def _ensure_service(self):
        if self.service is None:
            if self.credentials is None:
                raise RemoteUnavailable("Google credentials are not available")
            self.service = build("tasks", "v1", credentials=self.credentials, cache_discovery=False)
        return self.service

    def ensure_tasklist(self) -> str:
        if self.tasklist_id:
            return self.tasklist_id
        service = self._ensure_service()

        page_token: Optional[str] = None
        while True:
            response = self._call(
                service.tasklists().list, maxResults=100, pageToken=page_token
            )
            for item in response.get("items", []):
                if item.get("title") == self.tasklist_name and item.get("id"):
                    self.tasklist_id = item["id"]
                    return self.tasklist_id
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        created = self._call(service.tasklists().insert, body={"title": self.tasklist_name})
        self.tasklist_id = created.get("id")
        if not self.tasklist_id:
            raise RemoteRejected("Failed to create Google Tasks list")
        logger.info("Created task list %r", self.tasklist_name)
        return self.tasklist_id

    # ------------------------------------------------------------------
    # RemoteStore
    def list_all(self) -> List[RemoteTodo]:
        tasklist_id = self.ensure_tasklist()
        service = self._ensure_service()

        params: Dict[str, Any] = {
            "tasklist": tasklist_id,
            "showDeleted": False,
            "showHidden": True,
            "showCompleted": True,
            "maxResults": 100,
        }
        items: List[RemoteTodo] = []
        page_token: Optional[str] = None
        while True:
            response = self._call(service.tasks().list, pageToken=page_token, **params)
            for entry in response.get("items", []):
                if not entry.get("id") or entry.get("deleted"):
                    continue
                items.append(
                    RemoteTodo(
                        id=entry["id"],
                        text=entry.get("title") or "",
                        completed=entry.get("status") == "completed",
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return items

    def insert(self, text: str, completed: bool) -> str:
        tasklist_id = self.ensure_tasklist()
        service = self._ensure_service()
        response = self._call(
            service.tasks().insert, tasklist=tasklist_id, body=_task_body(text, completed)
        )
        remote_id = response.get("id")
        if not remote_id:
            raise RemoteRejected("Google Tasks returned no id for the new task")
        return remote_id

    def update(self, remote_id: str, text: str, completed: bool) -> None:
        tasklist_id = self.ensure_tasklist()
        service = self._ensure_service()
        try:
            self._call(
                service.tasks().patch,
                raw_http_errors=True,
                tasklist=tasklist_id,
                task=remote_id,
                body=_task_body(text, completed),
            )
        except HttpError as exc:
            if _status_of(exc) in _NOT_FOUND_STATUS:
                raise RemoteNotFound(f"Google task {remote_id} no longer exists") from exc
            raise RemoteRejected(f"Google Tasks rejected update: {exc}") from exc

    def delete(self, remote_id: str) -> None:
        tasklist_id = self.ensure_tasklist()
        service = self._ensure_service()
        try:
            self._call(
                service.tasks().delete,
                raw_http_errors=True,
                tasklist=tasklist_id,
                task=remote_id,
            )
        except HttpError as exc:
            if _status_of(exc) in _NOT_FOUND_STATUS:
                return
            raise RemoteRejected(f"Google Tasks rejected delete: {exc}") from exc

    # ----- internal helpers -----
    def _call(
        self, method: Callable[..., Any], *, raw_http_errors: bool = False, **kwargs
    ) -> Dict[str, Any]:
        """Execute a request with backoff.

        Retryable statuses and transport errors become :class:`RemoteUnavailable`
        once the retries run out. Other HTTP errors become :class:`RemoteRejected`, or are
        re-raised untouched with ``raw_http_errors`` so the caller can map them.
        """

        delay = REMOTE.initial_backoff_sec
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = method(**kwargs).execute()
                return response or {}
            except HttpError as exc:
                status = _status_of(exc)
                if status not in _RETRYABLE_STATUS:
                    if raw_http_errors:
                        raise
                    raise RemoteRejected(f"Google Tasks rejected request: {exc}") from exc
                if last_attempt:
                    raise RemoteUnavailable(f"Google Tasks unavailable ({status})") from exc
            except (TimeoutError, OSError, httplib2.HttpLib2Error, TransportError) as exc:
                if last_attempt:
                    raise RemoteUnavailable(f"Google Tasks unreachable: {exc}") from exc
            logger.debug("Retrying %s in %.1fs", getattr(method, "__name__", "request"), delay)
            self._sleep(delay)
            delay = min(delay * 2, REMOTE.max_backoff_sec)
        raise RemoteUnavailable("Google Tasks request did not complete")


def _task_body(text: str, completed: bool) -> Dict[str, Optional[str]]:
    body: Dict[str, Optional[str]] = {
        "title": text,
        "status": "completed" if completed else "needsAction",
    }
    if not completed:
        # reopening a task requires clearing the completion timestamp
        body["completed"] = None
    return body


__all__ = ["GoogleTasksRemote", "load_credentials"]
