"""Exception hierarchy shared by the stores and the synchronizer."""
from __future__ import annotations

from typing import Optional, Sequence


class SyncError(Exception):
    """Base class for every failure a sync round can surface."""


class LocalStoreError(SyncError):
    """The local cache is unavailable or corrupt. Fatal to the round."""


class RemoteError(SyncError):
    """Base class for failures reported by a remote store adapter."""


class RemoteUnavailable(RemoteError):
    """Transport failure or timeout. Retried on the next round."""


class RemoteRejected(RemoteError):
    """The remote refused the write, e.g. a constraint violation."""


class RemoteNotFound(RemoteError):
    """The remote no longer has the requested row."""


class SyncInProgressError(SyncError):
    """A round is already running on this synchronizer."""


class PullFailedError(SyncError):
    """The remote snapshot could not be fetched after the push phase."""

    def __init__(self, message: str, failures: Optional[Sequence] = None) -> None:
        super().__init__(message)
        self.failures = list(failures or [])


__all__ = [
    "LocalStoreError",
    "PullFailedError",
    "RemoteError",
    "RemoteNotFound",
    "RemoteRejected",
    "RemoteUnavailable",
    "SyncError",
    "SyncInProgressError",
]
