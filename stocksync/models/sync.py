from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

"""Reconciliation and sync result models.

PreviewResult is produced by the reconciliation engine and consumed by the
sync executor. SyncDetail / SyncSummary are the rows written to the audit sink.
"""

__all__ = [
    "SyncStatus",
    "FieldChange",
    "ChangeSet",
    "PreviewItem",
    "UpdateInstruction",
    "SyncDetail",
    "SyncSummary",
    "PreviewResult",
    "ItemError",
    "UpdateOutcome",
    "SyncReport",
    "changes_to_json",
]

ERROR_SAMPLE_SIZE = 5


class SyncStatus(Enum):
    """Outcome of one source record in a sync run."""
    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: Any
    new: Any


ChangeSet = dict[str, FieldChange]


def changes_to_json(changes: ChangeSet) -> str:
    """Serialize a ChangeSet as ``{"field": {"old": ..., "new": ...}}``."""
    return json.dumps(
        {name: {"old": c.old, "new": c.new} for name, c in changes.items()},
        ensure_ascii=False,
    )


@dataclass(frozen=True)
class PreviewItem:
    sku: str
    name: str
    changes: ChangeSet


@dataclass(frozen=True)
class UpdateInstruction:
    """New values to write for one remote product (or variant)."""
    remote_id: int
    sku: str
    regular_price: int
    sale_price: int
    stock_quantity: int
    inventory_item_id: int | None = None


@dataclass(frozen=True)
class SyncDetail:
    """One audit row per source record."""
    sku: str
    product_name: str
    status: SyncStatus
    changes_json: str = "{}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class SyncSummary:
    """Aggregate counts for one sync run.

    ``summary_id`` / ``created_at`` / ``user`` are filled in only when the
    summary is read back from an audit sink.
    """
    total_processed: int
    total_updated: int
    total_not_found: int
    total_up_to_date: int
    total_errors: int
    summary_id: int | None = None
    created_at: datetime | None = None
    user: str | None = None

    @staticmethod
    def from_details(details: list[SyncDetail]) -> SyncSummary:
        counts = {status: 0 for status in SyncStatus}
        for d in details:
            counts[d.status] += 1
        return SyncSummary(
            total_processed=len(details),
            total_updated=counts[SyncStatus.UPDATED],
            total_not_found=counts[SyncStatus.NOT_FOUND],
            total_up_to_date=counts[SyncStatus.UP_TO_DATE],
            total_errors=counts[SyncStatus.ERROR],
        )


@dataclass(frozen=True)
class PreviewResult:
    """Read-only reconciliation output shown to a human before committing."""
    site_name: str
    to_update: list[PreviewItem]
    up_to_date: list[tuple[str, str]]  # (sku, name)
    not_found: list[str]               # sku
    update_payload: list[UpdateInstruction]
    audit_rows: list[SyncDetail]

    @property
    def error_rows(self) -> list[SyncDetail]:
        return [r for r in self.audit_rows if r.status is SyncStatus.ERROR]


@dataclass(frozen=True)
class ItemError:
    """Failure of a single update item."""
    identifier: str
    sku: str
    message: str
    error_type: str = "UPDATE_FAILED"


@dataclass
class UpdateOutcome:
    """Per-item result of a batch update call."""
    updated: list[UpdateInstruction] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    def extend(self, other: UpdateOutcome) -> None:
        self.updated.extend(other.updated)
        self.errors.extend(other.errors)


@dataclass(frozen=True)
class SyncReport:
    """Final result of a confirmed sync."""
    summary: SyncSummary
    details: list[SyncDetail]
    errors: list[ItemError]
    elapsed_seconds: float = 0.0
    audit_error: str | None = None
    error_log_path: str | None = None

    @property
    def error_sample(self) -> list[ItemError]:
        return self.errors[:ERROR_SAMPLE_SIZE]

    @property
    def partial_failure(self) -> bool:
        return (
            bool(self.errors)
            or self.summary.total_errors > 0
            or self.audit_error is not None
        )
