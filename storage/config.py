"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from core.settings import CONFIG_PATH, REMOTE, SYNC

ENV_OVERRIDES = {
    "TODOSYNC_REMOTE_BACKEND": "remote_backend",
    "TODOSYNC_REMOTE_URL": "remote_url",
    "TODOSYNC_AUTH_TOKEN": "auth_token",
}

# never persisted to ``config.json``
_SECRET_FIELDS = {"auth_token"}


@dataclass
class AppConfig:
    """Lightweight configuration persisted to ``config.json``."""

    remote_backend: str = REMOTE.backend
    remote_url: Optional[str] = REMOTE.url
    tasklist_name: str = REMOTE.tasklist_name
    sync_interval_sec: float = SYNC.interval_sec
    push_delay_sec: float = SYNC.push_delay_sec
    auth_token: Optional[str] = None


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _apply_env(cfg: AppConfig, env: Mapping[str, str]) -> AppConfig:
    for var, attr in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            setattr(cfg, attr, value)
    return cfg


def load_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    known = {f.name for f in fields(AppConfig)} - _SECRET_FIELDS
    cfg = AppConfig(**{key: value for key, value in data.items() if key in known})
    return _apply_env(cfg, os.environ if env is None else env)


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    data = {key: value for key, value in asdict(config).items() if key not in _SECRET_FIELDS}
    payload = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target, env={})
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "ENV_OVERRIDES", "load_config", "save_config", "update_config"]
