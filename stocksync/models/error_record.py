from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""SyncErrorRecord model for the per-run error log.

One record per failed update item. The JSON Lines schema is fixed: no keys
are added beyond the dataclass fields.
"""

__all__ = [
    "SyncErrorRecord",
]


@dataclass(frozen=True)
class SyncErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        site: Site name the update was sent to
        sku: Source SKU of the failed item
        identifier: Remote identifier (product or variant id)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Provider or transport error message
    """
    timestamp: str  # ISO8601 UTC
    site: str
    sku: str
    identifier: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(site: str, sku: str, identifier: str, error_type: str, message: str) -> SyncErrorRecord:
        """Create a new SyncErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return SyncErrorRecord(
            timestamp=ts,
            site=site,
            sku=sku,
            identifier=identifier,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
