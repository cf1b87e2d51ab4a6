from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import LocalStoreError
from models.todo import Todo
from services.local_store import SqlTodoStore


def _insert(session_factory, **fields) -> int:
    values = {"text": "Task", "dirty": False}
    values.update(fields)
    with session_factory() as session:
        todo = Todo(**values)
        session.add(todo)
        session.commit()
        session.refresh(todo)
        return todo.local_id


def _get(session_factory, local_id):
    with session_factory() as session:
        return session.get(Todo, local_id)


def test_sync_candidates_are_unpushed_or_dirty(session_factory, store):
    new_id = _insert(session_factory, text="new", dirty=True)
    dirty_id = _insert(session_factory, text="edited", remote_id="1", dirty=True)
    _insert(session_factory, text="clean", remote_id="2", dirty=False)
    tomb_id = _insert(session_factory, text="gone", remote_id="3", dirty=True, tombstoned=True)

    ids = {todo.local_id for todo in store.list_sync_candidates()}
    assert ids == {new_id, dirty_id, tomb_id}
    assert store.count_pending() == 3


def test_list_all_hides_tombstones_and_orders_newest_first(session_factory, store):
    same = datetime(2024, 1, 1, tzinfo=timezone.utc)
    older = _insert(session_factory, text="older", created_at=datetime(2023, 1, 1, tzinfo=timezone.utc))
    first = _insert(session_factory, text="tie-1", created_at=same)
    second = _insert(session_factory, text="tie-2", created_at=same)
    _insert(session_factory, text="hidden", tombstoned=True, dirty=True, created_at=same)

    assert [todo.local_id for todo in store.list_all()] == [second, first, older]


def test_apply_remote_assignment_sets_id_and_clears_dirty(session_factory, store):
    local_id = _insert(session_factory, dirty=True)

    store.apply_remote_assignment(local_id, "42")

    row = _get(session_factory, local_id)
    assert row.remote_id == "42"
    assert row.dirty is False


def test_assignment_keeps_row_dirty_when_edited_after_push(session_factory, store):
    local_id = _insert(session_factory, text="Draft", dirty=True)

    store.apply_remote_assignment(local_id, "42", ("Draft v0", False, False))

    row = _get(session_factory, local_id)
    assert row.remote_id == "42"
    assert row.dirty is True


def test_clear_dirty_only_when_row_matches_pushed_values(session_factory, store):
    unchanged = _insert(session_factory, text="Same", remote_id="1", dirty=True)
    renamed = _insert(session_factory, text="Renamed", remote_id="2", dirty=True)
    deleted = _insert(session_factory, text="Gone", remote_id="3", dirty=True, tombstoned=True)

    store.clear_dirty(unchanged, ("Same", False, False))
    store.clear_dirty(renamed, ("Before rename", False, False))
    store.clear_dirty(deleted, ("Gone", False, False))

    assert _get(session_factory, unchanged).dirty is False
    assert _get(session_factory, renamed).dirty is True
    assert _get(session_factory, deleted).dirty is True


def test_bookkeeping_on_missing_row_is_a_noop(store):
    store.apply_remote_assignment(999, "1")
    store.clear_dirty(999)
    store.erase_local(999)
    store.erase_local(999)


def test_erase_local_removes_row(session_factory, store):
    local_id = _insert(session_factory, remote_id="5", tombstoned=True, dirty=True)
    store.erase_local(local_id)
    assert _get(session_factory, local_id) is None


def test_upsert_inserts_unknown_remote_row_clean(session_factory, store):
    assert store.upsert_from_remote("10", "From remote", True) is True

    [row] = store.list_all()
    assert row.remote_id == "10"
    assert row.text == "From remote"
    assert row.completed is True
    assert row.dirty is False
    assert row.tombstoned is False


def test_upsert_overwrites_clean_row(session_factory, store):
    local_id = _insert(session_factory, text="Old", remote_id="7")

    assert store.upsert_from_remote("7", "New", True) is True
    row = _get(session_factory, local_id)
    assert (row.text, row.completed) == ("New", True)


def test_upsert_leaves_dirty_row_untouched(session_factory, store):
    local_id = _insert(session_factory, text="Local edit", remote_id="7", dirty=True)

    assert store.upsert_from_remote("7", "Remote edit", True) is False
    row = _get(session_factory, local_id)
    assert (row.text, row.completed, row.dirty) == ("Local edit", False, True)


def test_upsert_with_same_values_reports_no_change(session_factory, store):
    _insert(session_factory, text="Same", remote_id="7", completed=True)
    assert store.upsert_from_remote("7", "Same", True) is False


def test_delete_where_remote_id_not_in_spares_dirty_and_unpushed(session_factory, store):
    kept = _insert(session_factory, remote_id="1")
    removed = _insert(session_factory, remote_id="2")
    dirty = _insert(session_factory, remote_id="3", dirty=True)
    unpushed = _insert(session_factory, remote_id=None, dirty=True)

    assert store.delete_where_remote_id_not_in(["1"]) == 1

    assert _get(session_factory, kept) is not None
    assert _get(session_factory, removed) is None
    assert _get(session_factory, dirty) is not None
    assert _get(session_factory, unpushed) is not None


def test_delete_where_remote_id_not_in_empty_snapshot(session_factory, store):
    _insert(session_factory, remote_id="1")
    dirty = _insert(session_factory, remote_id="2", dirty=True)

    assert store.delete_where_remote_id_not_in([]) == 1
    assert store.delete_where_remote_id_not_in([], only_if_clean=False) == 1
    assert _get(session_factory, dirty) is None


def test_sqlalchemy_failures_surface_as_local_store_error():
    class BrokenSession:
        def __enter__(self):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        def __exit__(self, *exc):
            return False

    store = SqlTodoStore(lambda: BrokenSession())
    with pytest.raises(LocalStoreError):
        store.list_sync_candidates()


def test_todo_service_mutations_mark_dirty(todos, session_factory):
    created = todos.add("  Buy milk  ")
    assert created.text == "Buy milk"
    assert created.dirty is True
    assert created.remote_id is None

    _insert(session_factory, text="Pushed", remote_id="9")
    pushed = next(t for t in todos.list_all() if t.remote_id == "9")

    toggled = todos.toggle(pushed.local_id)
    assert toggled.completed is True
    assert toggled.dirty is True

    renamed = todos.rename(pushed.local_id, "Renamed")
    assert renamed.text == "Renamed"

    todos.delete(pushed.local_id)
    row = _get(session_factory, pushed.local_id)
    assert row.tombstoned is True and row.dirty is True
    assert [t.local_id for t in todos.list_all()] == [created.local_id]

    # tombstoned rows accept no further edits
    assert todos.toggle(pushed.local_id) is None


def test_todo_service_rejects_empty_text(todos):
    with pytest.raises(ValueError):
        todos.add("   ")


def test_todo_service_notifies_listeners(todos):
    seen = []

    def broken(_local_id):
        raise RuntimeError("listener bug")

    todos.subscribe(seen.append)
    todos.subscribe(broken)
    created = todos.add("Call mom")
    todos.toggle(created.local_id)
    todos.unsubscribe(seen.append)
    todos.delete(created.local_id)

    assert seen == [created.local_id, created.local_id]
