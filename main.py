# todosync/main.py
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional, Sequence

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.errors import SyncError
from core.settings import TOKEN_PATH
from services.google_tasks import GoogleTasksRemote, load_credentials
from services.local_store import SqlTodoStore
from services.remote_store import RemoteStore, SqlRemoteStore
from services.sync_scheduler import SyncScheduler
from services.sync_service import SyncService
from services.todos import TodoService
from storage.config import AppConfig, load_config
from storage.db import init_db, session_factory_for

logger = logging.getLogger("todosync.main")


@dataclass
class SyncSession:
    todos: TodoService
    sync: SyncService
    scheduler: SyncScheduler


def build_remote(config: AppConfig) -> RemoteStore:
    if config.remote_backend == "google_tasks":
        return GoogleTasksRemote(
            credentials=load_credentials(TOKEN_PATH),
            tasklist_name=config.tasklist_name,
        )
    if config.remote_backend == "sql":
        if not config.remote_url:
            raise SystemExit("Remote URL is not configured (set TODOSYNC_REMOTE_URL)")
        remote = SqlRemoteStore.from_url(config.remote_url, auth_token=config.auth_token)
        remote.ensure_schema()
        return remote
    raise SystemExit(f"Unknown remote backend: {config.remote_backend}")


def build_session(
    config: AppConfig,
    *,
    remote: Optional[RemoteStore] = None,
    engine=None,
) -> SyncSession:
    engine = init_db(engine)
    factory = session_factory_for(engine)
    todos = TodoService(factory)
    sync = SyncService(SqlTodoStore(factory), remote or build_remote(config))
    scheduler = SyncScheduler(
        sync,
        interval_sec=config.sync_interval_sec,
        push_delay_sec=config.push_delay_sec,
    )
    todos.subscribe(scheduler.notify_mutation)
    return SyncSession(todos=todos, sync=sync, scheduler=scheduler)


async def _serve(session: SyncSession) -> None:
    scheduler = session.scheduler
    scheduler.subscribe(
        lambda summary, error: logger.info(
            "Round: %s", summary.describe() if summary else f"failed ({error})"
        )
    )
    scheduler.start()
    try:
        await scheduler.sync_now()
    except SyncError as exc:
        print(f"Initial sync failed: {exc}")
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Keep the local todo cache in sync with the remote")
    parser.add_argument("--once", action="store_true", help="run a single round and exit")
    parser.add_argument("--status", action="store_true", help="print sync status and exit")
    parser.add_argument("--add", metavar="TEXT", help="add a todo locally before syncing")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    session = build_session(load_config())

    if args.add:
        session.todos.add(args.add)

    if args.status:
        print(session.sync.status())
        return 0

    if args.once:
        try:
            summary = session.sync.run()
        except SyncError as exc:
            print(f"Sync failed: {exc}")
            return 1
        print(summary.describe())
        return 0 if summary.ok else 2

    try:
        asyncio.run(_serve(session))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
