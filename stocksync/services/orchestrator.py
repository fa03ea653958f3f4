from __future__ import annotations

import logging
from collections.abc import Sequence

from stocksync.audit.base import AuditSink
from stocksync.logging.error_log import ErrorLogBuffer
from stocksync.models.records import CanonicalStockRecord
from stocksync.models.site import SiteConfig
from stocksync.models.sync import PreviewResult, SyncReport
from stocksync.pipeline.runner import process_files
from stocksync.remote import RemoteCatalogClient, build_client

from .executor import UPDATE_BATCH_SIZE, UpdateCallback, execute_sync
from .reconcile import BATCH_SIZE, BatchCallback, reconcile

"""Facade over the pipeline, reconciliation and executor.

process_files -> generate_preview -> (human confirmation) -> confirm_sync.
A client is built from the SiteConfig when none is passed; a client built
here is closed here.
"""

__all__ = [
    "process_files",
    "generate_preview",
    "confirm_sync",
]

logger = logging.getLogger(__name__)


def generate_preview(
    site: SiteConfig,
    records: Sequence[CanonicalStockRecord],
    client: RemoteCatalogClient | None = None,
    batch_size: int = BATCH_SIZE,
    on_progress: BatchCallback | None = None,
) -> PreviewResult:
    """Reconcile records against the site's live catalog (read-only)."""
    if client is not None:
        return reconcile(records, client, batch_size, on_progress)
    with build_client(site) as owned:
        return reconcile(records, owned, batch_size, on_progress)


def confirm_sync(
    site: SiteConfig,
    preview: PreviewResult,
    *,
    user: str,
    audit_sink: AuditSink,
    client: RemoteCatalogClient | None = None,
    error_log: ErrorLogBuffer | None = None,
    batch_size: int = UPDATE_BATCH_SIZE,
    on_progress: UpdateCallback | None = None,
) -> SyncReport:
    """Apply a previously generated preview and record the audit report."""
    if preview.site_name != site.name:
        raise ValueError(f"preview was generated for '{preview.site_name}', not '{site.name}'")
    if client is not None:
        return execute_sync(
            client, preview, user=user, audit_sink=audit_sink,
            error_log=error_log, batch_size=batch_size, on_progress=on_progress,
        )
    with build_client(site) as owned:
        return execute_sync(
            owned, preview, user=user, audit_sink=audit_sink,
            error_log=error_log, batch_size=batch_size, on_progress=on_progress,
        )
