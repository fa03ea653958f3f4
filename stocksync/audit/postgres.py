from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import psycopg2

from stocksync.db.batch_insert import BatchInsertError, batch_insert
from stocksync.models.sync import SyncDetail, SyncStatus, SyncSummary

from .base import AuditSinkError

"""PostgreSQL audit sink.

Tables:
- sync_history: one row per sync run (summary counts)
- sync_detail: one row per source SKU, FK to sync_history

The sink owns its transaction boundary: record_sync commits summary and
details together or rolls both back.
"""

__all__ = [
    "PostgresAuditSink",
    "SCHEMA_SQL",
]

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sync_history (
    id BIGSERIAL PRIMARY KEY,
    user_username TEXT NOT NULL,
    sync_timestamp TIMESTAMPTZ NOT NULL DEFAULT now(),
    total_processed INTEGER NOT NULL,
    total_updated INTEGER NOT NULL,
    total_not_found INTEGER NOT NULL,
    total_up_to_date INTEGER NOT NULL,
    total_errors INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS sync_history_user_idx ON sync_history (user_username, sync_timestamp DESC);
CREATE TABLE IF NOT EXISTS sync_detail (
    id BIGSERIAL PRIMARY KEY,
    sync_id BIGINT NOT NULL REFERENCES sync_history (id) ON DELETE CASCADE,
    sku TEXT NOT NULL,
    product_name TEXT,
    status TEXT NOT NULL CHECK (status IN ('updated', 'not_found', 'up_to_date', 'error')),
    changes_json TEXT
);
CREATE INDEX IF NOT EXISTS sync_detail_sync_idx ON sync_detail (sync_id);
"""

_SUMMARY_COLUMNS = (
    "id", "user_username", "sync_timestamp", "total_processed", "total_updated",
    "total_not_found", "total_up_to_date", "total_errors",
)
DETAIL_COLUMNS = ("sync_id", "sku", "product_name", "status", "changes_json")


def _summary_from_row(row: Sequence[Any]) -> SyncSummary:
    data = dict(zip(_SUMMARY_COLUMNS, row, strict=True))
    return SyncSummary(
        total_processed=data["total_processed"],
        total_updated=data["total_updated"],
        total_not_found=data["total_not_found"],
        total_up_to_date=data["total_up_to_date"],
        total_errors=data["total_errors"],
        summary_id=data["id"],
        created_at=data["sync_timestamp"],
        user=data["user_username"],
    )


class PostgresAuditSink:
    def __init__(self, connection: Any, detail_page_size: int = 1000) -> None:
        self.connection = connection
        self.detail_page_size = detail_page_size

    def ensure_schema(self) -> None:
        try:
            with self.connection.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise AuditSinkError(f"failed to create audit tables: {e}") from e

    def record_sync(self, user: str, summary: SyncSummary, details: Sequence[SyncDetail]) -> int:
        try:
            with self.connection.cursor() as cur:
                cur.execute(
                    "INSERT INTO sync_history (user_username, total_processed, total_updated, "
                    "total_not_found, total_up_to_date, total_errors) "
                    "VALUES (%s, %s, %s, %s, %s, %s) RETURNING id",
                    (
                        user,
                        summary.total_processed,
                        summary.total_updated,
                        summary.total_not_found,
                        summary.total_up_to_date,
                        summary.total_errors,
                    ),
                )
                summary_id = cur.fetchone()[0]
                result = batch_insert(
                    cur,
                    "sync_detail",
                    DETAIL_COLUMNS,
                    (
                        (summary_id, d.sku, d.product_name, d.status.value, d.changes_json)
                        for d in details
                    ),
                    page_size=self.detail_page_size,
                )
            self.connection.commit()
        except (psycopg2.Error, BatchInsertError) as e:
            self.connection.rollback()
            raise AuditSinkError(f"failed to record sync for {user}: {e}") from e
        logger.debug(f"audit: sync {summary_id} stored with {result.inserted_rows} detail rows")
        return summary_id

    def get_latest_summary(self, user: str) -> SyncSummary | None:
        try:
            with self.connection.cursor() as cur:
                cur.execute(
                    f"SELECT {', '.join(_SUMMARY_COLUMNS)} FROM sync_history "
                    "WHERE user_username = %s ORDER BY sync_timestamp DESC, id DESC LIMIT 1",
                    (user,),
                )
                row = cur.fetchone()
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise AuditSinkError(f"failed to read sync history for {user}: {e}") from e
        return _summary_from_row(row) if row else None

    def get_details(self, summary_id: int) -> list[SyncDetail]:
        try:
            with self.connection.cursor() as cur:
                cur.execute(
                    "SELECT sku, product_name, status, changes_json FROM sync_detail "
                    "WHERE sync_id = %s ORDER BY id",
                    (summary_id,),
                )
                rows = cur.fetchall()
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise AuditSinkError(f"failed to read sync details for {summary_id}: {e}") from e
        return [
            SyncDetail(sku=sku, product_name=name or "", status=SyncStatus(status), changes_json=changes or "{}")
            for sku, name, status, changes in rows
        ]
