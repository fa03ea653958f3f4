from __future__ import annotations

import itertools
import threading
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime

from stocksync.models.sync import SyncDetail, SyncSummary

from .base import AuditSinkError

"""In-process audit sink.

Used when no database is reachable (CLI mock mode) and in tests. History is
lost when the process exits.
"""

__all__ = [
    "MemoryAuditSink",
]


class MemoryAuditSink:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._summaries: list[SyncSummary] = []
        self._details: dict[int, list[SyncDetail]] = {}

    def record_sync(self, user: str, summary: SyncSummary, details: Sequence[SyncDetail]) -> int:
        with self._lock:
            summary_id = next(self._ids)
            stored = replace(summary, summary_id=summary_id, user=user, created_at=datetime.now(UTC))
            self._summaries.append(stored)
            self._details[summary_id] = list(details)
            return summary_id

    def get_latest_summary(self, user: str) -> SyncSummary | None:
        with self._lock:
            for summary in reversed(self._summaries):
                if summary.user == user:
                    return summary
        return None

    def get_details(self, summary_id: int) -> list[SyncDetail]:
        with self._lock:
            try:
                return list(self._details[summary_id])
            except KeyError:
                raise AuditSinkError(f"sync summary not found: {summary_id}") from None

    def __len__(self) -> int:
        return len(self._summaries)
