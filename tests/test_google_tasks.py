import httplib2
import pytest
from googleapiclient.errors import HttpError

from core.errors import RemoteNotFound, RemoteRejected, RemoteUnavailable
from services.google_tasks import GoogleTasksRemote
from services.remote_store import RemoteTodo


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": str(status)}), b"error")


class FakeRequest:
    def __init__(self, outcome):
        self.outcome = outcome

    def execute(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class FakeResource:
    """Replays scripted outcomes per method name and records call kwargs."""

    def __init__(self, script):
        self.script = script
        self.calls = []

    def __getattr__(self, name):
        def method(**kwargs):
            self.calls.append((name, kwargs))
            outcomes = self.script.get(name, [])
            outcome = outcomes.pop(0) if outcomes else {}
            return FakeRequest(outcome)

        return method


class FakeService:
    def __init__(self, tasklists=None, tasks=None):
        self._tasklists = FakeResource(tasklists or {"list": [{"items": [{"id": "L1", "title": "Inbox"}]}]})
        self._tasks = FakeResource(tasks or {})

    def tasklists(self):
        return self._tasklists

    def tasks(self):
        return self._tasks


def _remote(service, **kwargs):
    return GoogleTasksRemote(service, tasklist_name="Inbox", sleep=lambda _: None, **kwargs)


def test_list_all_paginates_and_maps_status():
    service = FakeService(
        tasks={
            "list": [
                {
                    "items": [
                        {"id": "a", "title": "Milk", "status": "needsAction"},
                        {"id": "b", "title": "Bread", "status": "completed"},
                    ],
                    "nextPageToken": "p2",
                },
                {"items": [{"id": "c", "title": "Eggs", "status": "needsAction", "deleted": True}]},
            ]
        }
    )

    rows = _remote(service).list_all()

    assert rows == [RemoteTodo("a", "Milk", False), RemoteTodo("b", "Bread", True)]
    assert service._tasks.calls[1][1]["pageToken"] == "p2"
    assert service._tasks.calls[0][1]["tasklist"] == "L1"


def test_missing_tasklist_is_created():
    service = FakeService(tasklists={"list": [{"items": []}], "insert": [{"id": "NEW"}]})
    remote = _remote(service)
    assert remote.ensure_tasklist() == "NEW"
    assert service._tasklists.calls[-1] == ("insert", {"body": {"title": "Inbox"}})


def test_insert_returns_remote_id_and_sends_status():
    service = FakeService(tasks={"insert": [{"id": "t-1"}]})
    assert _remote(service).insert("Milk", True) == "t-1"
    _, kwargs = service._tasks.calls[0]
    assert kwargs["body"] == {"title": "Milk", "status": "completed"}


def test_update_clears_completion_when_reopened():
    service = FakeService(tasks={"patch": [{}]})
    _remote(service).update("t-1", "Milk", False)
    _, kwargs = service._tasks.calls[0]
    assert kwargs["task"] == "t-1"
    assert kwargs["body"] == {"title": "Milk", "status": "needsAction", "completed": None}


def test_update_missing_task_raises_not_found():
    service = FakeService(tasks={"patch": [_http_error(404)]})
    with pytest.raises(RemoteNotFound):
        _remote(service).update("gone", "x", False)


def test_update_bad_request_is_rejected():
    service = FakeService(tasks={"patch": [_http_error(400)]})
    with pytest.raises(RemoteRejected):
        _remote(service).update("t-1", "x", False)


def test_delete_treats_not_found_as_success():
    service = FakeService(tasks={"delete": [_http_error(410)]})
    _remote(service).delete("gone")


def test_retryable_errors_are_retried_then_succeed():
    service = FakeService(tasks={"insert": [_http_error(503), _http_error(429), {"id": "t-9"}]})
    delays = []
    remote = GoogleTasksRemote(service, tasklist_name="Inbox", sleep=delays.append)

    assert remote.insert("Milk", False) == "t-9"
    assert delays == [1.0, 2.0]


def test_exhausted_retries_become_unavailable():
    service = FakeService(tasks={"list": [_http_error(500), _http_error(502)]})
    remote = _remote(service, max_retries=2)
    with pytest.raises(RemoteUnavailable):
        remote.list_all()


def test_timeouts_become_unavailable():
    service = FakeService(tasks={"delete": [TimeoutError("read timed out")]})
    remote = _remote(service, max_retries=1)
    with pytest.raises(RemoteUnavailable):
        remote.delete("t-1")


def test_no_credentials_is_unavailable():
    with pytest.raises(RemoteUnavailable):
        GoogleTasksRemote(tasklist_name="Inbox").list_all()
