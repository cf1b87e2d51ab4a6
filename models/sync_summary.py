"""Result types reported by a sync round."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class PushFailure:
    local_id: int
    operation: str  # insert / update / delete
    error: Exception

    def __str__(self) -> str:
        return f"{self.operation} #{self.local_id}: {self.error}"


@dataclass
class SyncSummary:
    pushed_inserts: int = 0
    pushed_updates: int = 0
    pushed_deletes: int = 0
    pulled_upserts: int = 0
    pulled_deletes: int = 0
    # tombstones that never reached the remote and were dropped locally
    discarded_local: int = 0
    failures: List[PushFailure] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def attempted(self) -> int:
        return self.pushed_inserts + self.pushed_updates + self.pushed_deletes + self.failed

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def changed(self) -> bool:
        """True when the round changed anything in either store."""

        return bool(
            self.pushed_inserts
            or self.pushed_updates
            or self.pushed_deletes
            or self.pulled_upserts
            or self.pulled_deletes
            or self.discarded_local
        )

    def describe(self) -> str:
        if self.failures:
            return f"{self.failed} of {self.attempted} changes failed to sync"
        if not self.changed:
            return "Up to date"
        return (
            f"Pushed {self.pushed_inserts + self.pushed_updates + self.pushed_deletes}, "
            f"pulled {self.pulled_upserts + self.pulled_deletes}"
        )

    def as_dict(self) -> dict:
        return {
            "pushedInserts": self.pushed_inserts,
            "pushedUpdates": self.pushed_updates,
            "pushedDeletes": self.pushed_deletes,
            "pulledUpserts": self.pulled_upserts,
            "pulledDeletes": self.pulled_deletes,
            "discardedLocal": self.discarded_local,
            "failures": [str(item) for item in self.failures],
        }


__all__ = ["PushFailure", "SyncSummary"]
