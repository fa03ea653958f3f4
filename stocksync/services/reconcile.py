from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence

from stocksync.models.records import CanonicalStockRecord
from stocksync.models.sync import (
    PreviewItem,
    PreviewResult,
    SyncDetail,
    SyncStatus,
    UpdateInstruction,
    changes_to_json,
)
from stocksync.remote.base import RemoteCatalogClient, RemoteProductRecord

"""Reconciliation engine: canonical records vs. live remote state.

Read-only. Records are processed in sequential batches; each batch costs one
(paginated) remote lookup. Any remote error aborts the whole preview so a
partial diff is never shown.

Invariants:
- exactly one audit row per input record
- at most one update instruction per remote product
"""

__all__ = [
    "BATCH_SIZE",
    "NOT_FOUND_NAME",
    "BatchCallback",
    "reconcile",
]

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
NOT_FOUND_NAME = "N/A"

# (batch_number, total_batches, fetched_count)
BatchCallback = Callable[[int, int, int], None]


def _batches(records: Sequence[CanonicalStockRecord], size: int) -> list[Sequence[CanonicalStockRecord]]:
    return [records[i:i + size] for i in range(0, len(records), size)]


def reconcile(
    records: Sequence[CanonicalStockRecord],
    client: RemoteCatalogClient,
    batch_size: int = BATCH_SIZE,
    on_progress: BatchCallback | None = None,
) -> PreviewResult:
    """Classify every record as updated / up_to_date / not_found and build the payload.

    Raises:
        RemoteApiError: any remote fetch failure (no partial result)
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    to_update: list[PreviewItem] = []
    up_to_date: list[tuple[str, str]] = []
    not_found: list[str] = []
    payload: list[UpdateInstruction] = []
    audit_rows: list[SyncDetail] = []
    seen_skus: set[str] = set()

    batches = _batches(records, batch_size)
    logger.info(f"reconciling {len(records)} records in {len(batches)} batch(es) against {client.site.name}")

    for number, batch in enumerate(batches, start=1):
        skus = list(dict.fromkeys(r.sku for r in batch))
        remote_records = client.fetch_products_by_sku(skus)
        lookup: dict[str, RemoteProductRecord] = {}
        for remote in remote_records:
            lookup.setdefault(remote.sku, remote)
        logger.debug(f"batch {number}/{len(batches)}: {len(remote_records)} remote matches for {len(skus)} skus")

        for record in batch:
            remote = lookup.get(record.sku)
            if record.sku in seen_skus:
                # 重複 SKU (重複排除ステップ無効時のみ発生): 最初のレコードのみ採用
                audit_rows.append(SyncDetail(
                    sku=record.sku,
                    product_name=remote.name if remote else NOT_FOUND_NAME,
                    status=SyncStatus.ERROR,
                    changes_json=json.dumps({"error": "duplicate SKU in source data; first occurrence used"}),
                ))
                continue
            seen_skus.add(record.sku)

            if remote is None:
                not_found.append(record.sku)
                audit_rows.append(SyncDetail(record.sku, NOT_FOUND_NAME, SyncStatus.NOT_FOUND))
                continue

            changes = client.diff(record, remote)
            if not changes:
                up_to_date.append((record.sku, remote.name))
                audit_rows.append(SyncDetail(record.sku, remote.name, SyncStatus.UP_TO_DATE))
                continue

            payload.append(client.build_instruction(record, remote))
            to_update.append(PreviewItem(sku=record.sku, name=remote.name, changes=changes))
            audit_rows.append(SyncDetail(record.sku, remote.name, SyncStatus.UPDATED, changes_to_json(changes)))

        if on_progress is not None:
            on_progress(number, len(batches), len(remote_records))

    logger.info(
        f"preview ready: to_update={len(to_update)} up_to_date={len(up_to_date)} "
        f"not_found={len(not_found)}"
    )
    return PreviewResult(
        site_name=client.site.name,
        to_update=to_update,
        up_to_date=up_to_date,
        not_found=not_found,
        update_payload=payload,
        audit_rows=audit_rows,
    )
