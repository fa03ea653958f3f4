from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from stocksync.models.sync import SyncDetail, SyncSummary

__all__ = [
    "AuditSink",
    "AuditSinkError",
]


class AuditSinkError(Exception):
    """Raised when a sync report cannot be persisted or read back."""


@runtime_checkable
class AuditSink(Protocol):
    """Write-mostly store for sync history.

    ``record_sync`` persists one summary and all of its detail rows and
    returns the summary id.
    """

    def record_sync(self, user: str, summary: SyncSummary, details: Sequence[SyncDetail]) -> int:
        ...

    def get_latest_summary(self, user: str) -> SyncSummary | None:
        ...

    def get_details(self, summary_id: int) -> list[SyncDetail]:
        ...
