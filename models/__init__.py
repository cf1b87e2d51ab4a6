"""ORM models and result types exposed by TodoSync."""
from .todo import Todo
from .sync_summary import PushFailure, SyncSummary

__all__ = ["Todo", "PushFailure", "SyncSummary"]
