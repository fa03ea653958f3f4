from __future__ import annotations

import io
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any

import pandas as pd

from stocksync.models.records import RawRow

"""Spreadsheet ingestion for the stock report and item directory workbooks.

Layout of both inputs (first worksheet only):
- rows 0-1: report title / banner (ignored)
- row 2: header row
- rows 3..: data rows

Parsing is eager (so malformed input fails before any transform runs);
row decoding is lazy via iter_raw_rows().
"""

__all__ = [
    "IngestError",
    "HEADER_ROW_INDEX",
    "read_sheet",
    "iter_raw_rows",
    "read_workbooks",
]

SheetSource = str | Path | bytes | IO[bytes]

# 0-1 行目はタイトル領域、2 行目がヘッダ
HEADER_ROW_INDEX = 2


class IngestError(Exception):
    """Raised when an input cannot be parsed as a tabular workbook."""


def _describe(source: SheetSource) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    return getattr(source, "name", "<stream>")


def read_sheet(source: SheetSource, label: str = "sheet") -> pd.DataFrame:
    """Parse the first worksheet and apply the header row.

    Parameters
    ----------
    source: workbook path, raw bytes or binary file object
    label: human readable name used in error messages

    Raises
    ------
    IngestError: unreadable workbook, or fewer rows than the title+header region
    """
    where = _describe(source)
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    try:
        raw = pd.read_excel(source, sheet_name=0, header=None, dtype=object)
    except Exception as e:
        raise IngestError(f"{label}: cannot parse {where} as a workbook: {e}") from e

    if raw.shape[0] <= HEADER_ROW_INDEX:
        raise IngestError(
            f"{label}: {where} has {raw.shape[0]} row(s); expected title rows and a header row"
        )
    columns = [
        str(c).strip() if not pd.isna(c) else f"column_{i}"
        for i, c in enumerate(raw.iloc[HEADER_ROW_INDEX].tolist())
    ]
    data = raw.iloc[HEADER_ROW_INDEX + 1:].copy()
    data.columns = columns
    return data.reset_index(drop=True)


def _clean_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, float) and pd.isna(val):
        return None
    if val is pd.NaT:
        return None
    if isinstance(val, str):
        stripped = val.strip()
        return stripped if stripped else None
    # numpy スカラーは Python ネイティブ型に戻す
    if hasattr(val, "item") and not isinstance(val, (list, dict)):
        try:
            return val.item()
        except (TypeError, ValueError):
            return val
    return val


def iter_raw_rows(df: pd.DataFrame) -> Iterator[RawRow]:
    """Yield one RawRow per non-empty data row (NaN / blank -> None)."""
    columns = [str(c) for c in df.columns]
    for values in df.itertuples(index=False, name=None):
        row = {col: _clean_value(v) for col, v in zip(columns, values, strict=False)}
        if all(v is None for v in row.values()):
            continue
        yield row


def read_workbooks(
    stock_report: SheetSource, item_directory: SheetSource
) -> tuple[Iterator[RawRow], Iterator[RawRow]]:
    """Parse both inputs; either failing raises IngestError before rows are consumed."""
    stock_df = read_sheet(stock_report, label="stock report")
    directory_df = read_sheet(item_directory, label="item directory")
    return iter_raw_rows(stock_df), iter_raw_rows(directory_df)
