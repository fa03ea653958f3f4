from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from stocksync.models.error_record import SyncErrorRecord

"""Sync error log buffering.

- JSON Lines, fixed schema (SyncErrorRecord)
- `logs/sync-errors-YYYYMMDD-HHMMSS.log` (UTC), created on first flush
- The CLI prints only a sample of failures; this file holds all of them.
"""

__all__ = [
    "SyncErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush appends JSON Lines.

    Not thread safe; one buffer per sync run.
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[SyncErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"sync-errors-{stamp}.log"
        return self._file_path

    def append(self, record: SyncErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns None when nothing was ever logged."""
        if not self._records:
            return self._file_path
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
