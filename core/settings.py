"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "TodoSync"


DATA_DIR = Path(os.environ.get("TODOSYNC_DATA_DIR") or get_default_data_dir(APP_NAME))
LOG_DIR = DATA_DIR / "logs"
SECRETS_DIR = DATA_DIR / "secrets"

for _dir in (DATA_DIR, LOG_DIR, SECRETS_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "todos.db"
CONFIG_PATH = DATA_DIR / "config.json"
TOKEN_PATH = SECRETS_DIR / "token.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class SyncSettings:
    enabled: bool = True
    # periodic background round
    interval_sec: float = 3.0
    # debounce after a local edit
    push_delay_sec: float = 1.0
    log_max_bytes: int = 1_000_000
    log_backup_count: int = 3


SYNC = SyncSettings()


@dataclass(frozen=True)
class RemoteSettings:
    backend: str = "sql"  # sql / google_tasks
    url: Optional[str] = None
    tasklist_name: str = APP_NAME
    scopes: tuple[str, ...] = ("https://www.googleapis.com/auth/tasks",)
    max_retries: int = 5
    initial_backoff_sec: float = 1.0
    max_backoff_sec: float = 16.0


REMOTE = RemoteSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "SECRETS_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "TOKEN_PATH",
    "SYNC_LOG_PATH",
    "SYNC",
    "REMOTE",
    "SyncSettings",
    "RemoteSettings",
    "get_default_data_dir",
]
