from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import psycopg2
from psycopg2.extras import execute_values

"""Batched INSERT helper built on psycopg2.extras.execute_values.

Used by the PostgreSQL audit sink to write sync_detail rows. Table and
column names are trusted identifiers from code, never user input.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "batch_insert",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of a single execute_values call."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: str | None = None,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """INSERT rows in pages of ``page_size``.

    Parameters
    ----------
    cursor: psycopg2 cursor (transaction is managed by the caller)
    table: target table
    columns: insert columns, in row order
    rows: row value sequences
    returning: optional column list for a RETURNING clause
    metrics_callback: receives BatchMetrics; not called for empty input
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if returning:
        sql += f" RETURNING {returning}"

    start_time = time.time()
    try:
        returned = execute_values(
            cursor, sql, rows_list, page_size=page_size, fetch=bool(returning)
        )
    except psycopg2.Error as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(BatchMetrics(
                batch_size=len(rows_list),
                elapsed_seconds=end_time - start_time,
                start_time=start_time,
                end_time=end_time,
            ))

    return InsertResult(inserted_rows=len(rows_list), returned_values=returned if returning else None)
