from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import replace

from stocksync.audit.base import AuditSink
from stocksync.logging.error_log import ErrorLogBuffer, SyncErrorRecord
from stocksync.models.sync import (
    ItemError,
    PreviewResult,
    SyncDetail,
    SyncReport,
    SyncStatus,
    SyncSummary,
    UpdateInstruction,
    UpdateOutcome,
)
from stocksync.remote.base import RemoteCatalogClient
from stocksync.remote.errors import RemoteApiError

"""Sync executor: applies a confirmed preview's update payload.

- Payload is sent in sequential batches; items are independent (no
  cross-item atomicity, no rollback).
- Item failures become data: the audit row turns into status=error with the
  message embedded, and the failure is appended to the JSON Lines error log.
- The report is always sent to the audit sink. A sink failure is attached
  to the report; remote updates already applied stay applied.
"""

__all__ = [
    "UPDATE_BATCH_SIZE",
    "execute_sync",
    "apply_errors",
]

logger = logging.getLogger(__name__)

UPDATE_BATCH_SIZE = 100

# (batch_number, total_batches, updated_so_far, errors_so_far)
UpdateCallback = Callable[[int, int, int, int], None]


def _apply_batch(client: RemoteCatalogClient, batch: Sequence[UpdateInstruction]) -> UpdateOutcome:
    try:
        return client.update_products(batch)
    except RemoteApiError as e:
        logger.warning(f"update batch of {len(batch)} failed as a whole: {e}")
        return UpdateOutcome(
            errors=[ItemError(f"ID: {i.remote_id}", i.sku, str(e), e.error_type) for i in batch]
        )
    except Exception as e:
        # 想定外の応答でも後続バッチと監査記録は継続する
        logger.exception(f"update batch of {len(batch)} failed unexpectedly: {e!r}")
        return UpdateOutcome(
            errors=[ItemError(f"ID: {i.remote_id}", i.sku, f"{type(e).__name__}: {e}") for i in batch]
        )


def apply_errors(details: Sequence[SyncDetail], errors: Sequence[ItemError]) -> list[SyncDetail]:
    """Overwrite the audit rows of failed items with status=error."""
    by_sku = {e.sku: e for e in errors}
    result: list[SyncDetail] = []
    for detail in details:
        err = by_sku.pop(detail.sku, None) if detail.status is SyncStatus.UPDATED else None
        if err is None:
            result.append(detail)
            continue
        result.append(replace(
            detail,
            status=SyncStatus.ERROR,
            changes_json=json.dumps(
                {"error": err.message, "changes": json.loads(detail.changes_json or "{}")},
                ensure_ascii=False,
            ),
        ))
    for orphan in by_sku.values():
        logger.warning(f"update error for {orphan.identifier} has no matching audit row: {orphan.message}")
    return result


def execute_sync(
    client: RemoteCatalogClient,
    preview: PreviewResult,
    *,
    user: str,
    audit_sink: AuditSink,
    error_log: ErrorLogBuffer | None = None,
    batch_size: int = UPDATE_BATCH_SIZE,
    on_progress: UpdateCallback | None = None,
) -> SyncReport:
    """Apply ``preview.update_payload`` and persist the final report.

    Never raises for item-level or audit-sink failures.
    """
    start = time.monotonic()
    payload = preview.update_payload
    batches = [payload[i:i + batch_size] for i in range(0, len(payload), batch_size)]

    outcome = UpdateOutcome()
    if not batches:
        logger.info("no products required an update")
    for number, batch in enumerate(batches, start=1):
        logger.info(f"sending update batch {number}/{len(batches)} ({len(batch)} items) to {client.site.name}")
        outcome.extend(_apply_batch(client, batch))
        if on_progress is not None:
            on_progress(number, len(batches), outcome.updated_count, len(outcome.errors))
    if batches:
        logger.info(f"update requests complete: {outcome.updated_count} success, {len(outcome.errors)} errors")

    details = apply_errors(preview.audit_rows, outcome.errors)
    summary = SyncSummary.from_details(details)

    log_path: str | None = None
    if error_log is not None and outcome.errors:
        for e in outcome.errors:
            error_log.append(SyncErrorRecord.create(client.site.name, e.sku, e.identifier, e.error_type, e.message))
        flushed = error_log.flush()
        log_path = str(flushed) if flushed else None

    audit_error: str | None = None
    try:
        summary_id = audit_sink.record_sync(user, summary, details)
    except Exception as e:  # 監査書き込み失敗はリモート更新を巻き戻さない
        audit_error = str(e)
        logger.error(f"failed to save sync report: {e}")
    else:
        summary = replace(summary, summary_id=summary_id, user=user)
        logger.info(f"sync report saved (id={summary_id})")

    return SyncReport(
        summary=summary,
        details=details,
        errors=outcome.errors,
        elapsed_seconds=time.monotonic() - start,
        audit_error=audit_error,
        error_log_path=log_path,
    )
