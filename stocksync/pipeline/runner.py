from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import pandas as pd

from stocksync.config.loader import ConfigurationError
from stocksync.excel.reader import SheetSource, read_workbooks
from stocksync.models.records import EXPORT_COLUMNS, CanonicalStockRecord, RawRow
from stocksync.models.workflow import WorkflowStep

from . import steps as s

"""Pipeline runner: executes the enabled transform steps in fixed order.

Progress is reported through an ``on_step(index)`` callback: index 1 is the
read step, each executed transform step gets the next index, and the last
index is the "prepare preview" step. The callback does not affect results.
"""

__all__ = [
    "StepCallback",
    "run_pipeline",
    "process_files",
    "step_labels",
    "export_csv",
]

logger = logging.getLogger(__name__)

StepCallback = Callable[[int], None]

READ_STEP_LABEL = "Reading Excel files"
FINAL_STEP_LABEL = "Preparing data preview"

_CANONICAL_FIELDS = ("sku", "regular_price", "old_sale_price", "purchase_rate", "stock")


def _noop(_: int) -> None:
    return None


def _executed_keys(workflow: Sequence[WorkflowStep] | None) -> set[str]:
    if not workflow:
        raise ConfigurationError("workflow configuration is not loaded")
    return {step.key for step in workflow if step.runs}


def step_labels(workflow: Sequence[WorkflowStep]) -> list[str]:
    """Progress labels in callback index order (index 1 == labels[0])."""
    executed = _executed_keys(workflow)
    names = {step.key: step.name for step in workflow}
    return [READ_STEP_LABEL, *(names[k] for k in s.STEP_ORDER if k in executed), FINAL_STEP_LABEL]


def _to_record(row: RawRow) -> CanonicalStockRecord:
    missing = [f for f in _CANONICAL_FIELDS if f not in row]
    if missing:
        raise ConfigurationError(
            f"workflow produced a row without canonical fields {missing}; "
            "check that renameColumns is enabled"
        )
    old_sale_price = s.safe_ceil(row["old_sale_price"])
    return CanonicalStockRecord(
        sku=str(row["sku"]),
        regular_price=s.safe_ceil(row["regular_price"]),
        sale_price=s.safe_ceil(row.get("sale_price", old_sale_price)),
        stock=s.safe_ceil(row["stock"]),
        old_sale_price=old_sale_price,
        purchase_rate=s.safe_ceil(row["purchase_rate"]),
    )


def run_pipeline(
    stock_rows: Iterable[RawRow],
    directory_rows: Iterable[RawRow],
    workflow: Sequence[WorkflowStep] | None,
    on_step: StepCallback | None = None,
) -> list[CanonicalStockRecord]:
    """Transform already-read rows into canonical records.

    Raises:
        ConfigurationError: workflow missing, or the enabled steps did not
            produce canonical rows
    """
    executed = _executed_keys(workflow)
    notify = on_step or _noop
    counter = 1

    notify(counter)
    data: list[RawRow] = list(stock_rows)
    directory: list[RawRow] = list(directory_rows)
    logger.debug(f"pipeline input: stock_rows={len(data)} directory_rows={len(directory)}")

    def advance(key: str) -> bool:
        nonlocal counter
        if key not in executed:
            logger.debug(f"step skipped: {key}")
            return False
        counter += 1
        notify(counter)
        return True

    if advance("cleanClosingStock"):
        before = len(data)
        data = s.clean_closing_stock(data)
        logger.debug(f"cleanClosingStock: {before} -> {len(data)} rows")
    if advance("deduplicateClosingStock"):
        before = len(data)
        data = s.deduplicate_closing_stock(data)
        logger.debug(f"deduplicateClosingStock: {before} -> {len(data)} rows")
    if advance("cleanItemDirectory"):
        directory = s.clean_item_directory(directory)
    if advance("renameColumns"):
        data = s.rename_columns(data)
    if advance("applyDiscounts"):
        data = s.apply_discounts(data, directory)
    if advance("calculateNewSalePrice"):
        data = s.calculate_new_sale_price(data)
    if advance("finalizeData"):
        data = s.finalize_data(data)

    records = [_to_record(row) for row in data]
    counter += 1
    notify(counter)
    logger.info(f"pipeline produced {len(records)} canonical records")
    return records


def process_files(
    stock_report: SheetSource,
    item_directory: SheetSource,
    workflow: Sequence[WorkflowStep] | None,
    on_step: StepCallback | None = None,
) -> list[CanonicalStockRecord]:
    """Ingest both workbooks and run the pipeline.

    The workflow is checked before any file is read.
    """
    _executed_keys(workflow)
    stock_rows, directory_rows = read_workbooks(stock_report, item_directory)
    return run_pipeline(stock_rows, directory_rows, workflow, on_step)


def export_csv(records: Sequence[CanonicalStockRecord], target: Any) -> None:
    """Write records as CSV with the export column labels."""
    df = pd.DataFrame([r.to_export_row() for r in records], columns=EXPORT_COLUMNS)
    df.to_csv(target, index=False)
