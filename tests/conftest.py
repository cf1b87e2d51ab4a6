import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep settings, logs and config files out of the real user data dir
os.environ.setdefault("TODOSYNC_DATA_DIR", tempfile.mkdtemp(prefix="todosync-tests-"))

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.local_store import SqlTodoStore  # noqa: E402
from services.todos import TodoService  # noqa: E402
from storage.db import create_local_engine, init_db, session_factory_for  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_local_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return session_factory_for(engine)


@pytest.fixture()
def store(session_factory):
    return SqlTodoStore(session_factory)


@pytest.fixture()
def todos(session_factory):
    return TodoService(session_factory)
