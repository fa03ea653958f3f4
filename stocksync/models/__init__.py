"""Domain models for the stock sync pipeline."""

from .records import EXPORT_COLUMNS, CanonicalStockRecord, RawRow
from .site import Platform, SiteConfig
from .sync import (
    ChangeSet,
    FieldChange,
    ItemError,
    PreviewItem,
    PreviewResult,
    SyncDetail,
    SyncReport,
    SyncStatus,
    SyncSummary,
    UpdateInstruction,
    UpdateOutcome,
)
from .workflow import WorkflowStep

__all__ = [
    # Pipeline models
    "RawRow",
    "CanonicalStockRecord",
    "EXPORT_COLUMNS",
    "WorkflowStep",
    # Site models
    "Platform",
    "SiteConfig",
    # Sync models
    "ChangeSet",
    "FieldChange",
    "ItemError",
    "PreviewItem",
    "PreviewResult",
    "SyncDetail",
    "SyncReport",
    "SyncStatus",
    "SyncSummary",
    "UpdateInstruction",
    "UpdateOutcome",
]
