from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from decimal import ROUND_CEILING, Decimal
from typing import Any

from stocksync.models.records import RawRow
from stocksync.models.workflow import WorkflowStep

"""Pure transform steps.

Every step takes row dicts and returns new row dicts; inputs are never
mutated. Column names of the two source workbooks are fixed by the ERP
export that produces them.
"""

__all__ = [
    "ITEM_CODE", "MRP", "SALE_RATE", "PURCHASE_RATE", "CLOSING_STOCK_QTY", "DISCOUNT",
    "STEP_ORDER",
    "DEFAULT_WORKFLOW",
    "safe_ceil",
    "clean_discount",
    "clean_closing_stock",
    "deduplicate_closing_stock",
    "clean_item_directory",
    "rename_columns",
    "apply_discounts",
    "calculate_new_sale_price",
    "finalize_data",
]

logger = logging.getLogger(__name__)

# Closing stock report columns
ITEM_CODE = "ITEM CODE"
MRP = "MRP"
SALE_RATE = "SALE RATE"
PURCHASE_RATE = "PURCHASE RATE"
CLOSING_STOCK_QTY = "CLOSING STOCK QTY"
# Item directory columns
DISCOUNT = "DISCOUNT"

# Fixed execution order; later steps depend on the row shape of earlier ones.
STEP_ORDER: tuple[str, ...] = (
    "cleanClosingStock",
    "deduplicateClosingStock",
    "cleanItemDirectory",
    "renameColumns",
    "applyDiscounts",
    "calculateNewSalePrice",
    "finalizeData",
)

DEFAULT_WORKFLOW: tuple[WorkflowStep, ...] = (
    WorkflowStep("cleanClosingStock", "Clean Closing Stock", 1, True, True,
                 "Filters invalid rows and sanitizes numeric values from the closing stock report."),
    WorkflowStep("deduplicateClosingStock", "Deduplicate Stock Items", 2, True, False,
                 "Removes duplicate stock items, keeping the one with the highest MRP and stock quantity."),
    WorkflowStep("cleanItemDirectory", "Clean Item Directory", 3, True, True,
                 "Sanitizes discount percentages and MRP values from the item directory."),
    WorkflowStep("renameColumns", "Rename Columns", 4, True, True,
                 'Renames source columns (e.g., "ITEM CODE") to their final format (e.g., "SKU").'),
    WorkflowStep("applyDiscounts", "Apply Discounts", 5, True, True,
                 "Looks up and applies discounts from the item directory to the stock data."),
    WorkflowStep("calculateNewSalePrice", "Calculate Final Sale Price", 6, True, True,
                 "Calculates the new sale price based on the old sale price and the applied discount."),
    WorkflowStep("finalizeData", "Finalize Data Structure", 7, True, True,
                 'Removes temporary columns (like "DISCOUNT") to prepare the final output.'),
)

_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_NIL_TOKENS = {"", "nil", "(nil)"}


def _to_number(val: Any) -> float | None:
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        num = float(val)
    elif isinstance(val, str):
        text = val.strip()
        if text == "":
            return 0.0
        try:
            num = float(text)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def safe_ceil(val: Any) -> int:
    """Ceil a cell value to an int; blank, non-numeric and non-finite values become 0."""
    if isinstance(val, int) and not isinstance(val, bool):
        return val
    num = _to_number(val)
    return 0 if num is None else math.ceil(num)


def clean_discount(value: Any) -> int:
    """Parse a discount cell such as ``"15%"``, ``"(Nil)"`` or ``12.5``.

    Never raises; anything unparseable counts as no discount.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return safe_ceil(value)
    if not value or not isinstance(value, str):
        return 0
    cleaned = value.replace("%", "").strip().lower()
    if cleaned in _NIL_TOKENS:
        return 0
    match = _LEADING_FLOAT.match(cleaned)
    if match is None:
        return 0
    return safe_ceil(match.group(0))


def item_code_str(val: Any) -> str | None:
    """Render an item code cell as the string key used for matching."""
    if val is None:
        return None
    if isinstance(val, float):
        if not math.isfinite(val):
            return None
        if val.is_integer():
            return str(int(val))
    text = str(val).strip()
    return text or None


def clean_closing_stock(rows: Iterable[RawRow]) -> list[RawRow]:
    cleaned: list[RawRow] = []
    for row in rows:
        sale_rate = row.get(SALE_RATE)
        if sale_rate is None or (isinstance(sale_rate, str) and sale_rate.strip() == ""):
            continue
        out = dict(row)
        for col in (CLOSING_STOCK_QTY, MRP, SALE_RATE, PURCHASE_RATE):
            out[col] = safe_ceil(row.get(col))
        if out[PURCHASE_RATE] < 0 or out[CLOSING_STOCK_QTY] < 0:
            continue
        cleaned.append(out)
    return cleaned


def deduplicate_closing_stock(rows: Iterable[RawRow]) -> list[RawRow]:
    """Keep one row per item code: highest MRP, then highest stock quantity.

    Groups keep the order in which their item code first appeared.
    """
    groups: dict[str, list[RawRow]] = {}
    missing = 0
    for row in rows:
        code = item_code_str(row.get(ITEM_CODE))
        if code is None:
            missing += 1
            continue
        groups.setdefault(code, []).append(row)
    if missing:
        logger.warning(f"dropped {missing} stock row(s) without an item code")

    result: list[RawRow] = []
    for code, group in groups.items():
        best = max(group, key=lambda r: (safe_ceil(r.get(MRP)), safe_ceil(r.get(CLOSING_STOCK_QTY))))
        result.append({
            ITEM_CODE: code,
            MRP: best.get(MRP),
            SALE_RATE: best.get(SALE_RATE),
            PURCHASE_RATE: best.get(PURCHASE_RATE),
            CLOSING_STOCK_QTY: best.get(CLOSING_STOCK_QTY),
        })
    return result


def clean_item_directory(rows: Iterable[RawRow]) -> list[RawRow]:
    return [
        {
            ITEM_CODE: row.get(ITEM_CODE),
            DISCOUNT: clean_discount(row.get(DISCOUNT)),
            MRP: safe_ceil(row.get(MRP)),
        }
        for row in rows
    ]


def rename_columns(rows: Iterable[RawRow]) -> list[RawRow]:
    """Project to the canonical field names; rows without an item code are dropped."""
    renamed: list[RawRow] = []
    missing = 0
    for row in rows:
        sku = item_code_str(row.get(ITEM_CODE))
        if sku is None:
            missing += 1
            continue
        renamed.append({
            "sku": sku,
            "regular_price": row.get(MRP),
            "old_sale_price": row.get(SALE_RATE),
            "purchase_rate": row.get(PURCHASE_RATE),
            "stock": row.get(CLOSING_STOCK_QTY),
        })
    if missing:
        logger.warning(f"dropped {missing} row(s) without an item code")
    return renamed


def apply_discounts(rows: Iterable[RawRow], directory: Iterable[RawRow]) -> list[RawRow]:
    """Left join on sku; records without a directory entry get discount 0."""
    discounts: dict[str, int] = {}
    for entry in directory:
        code = item_code_str(entry.get(ITEM_CODE))
        if code:
            discounts[code] = clean_discount(entry.get(DISCOUNT))
    return [{**row, "discount": discounts.get(row.get("sku") or "", 0)} for row in rows]


def discounted_price(old_sale_price: Any, discount: Any) -> int:
    """ceil(old * (1 - discount/100)) in exact decimal arithmetic, floored at 0."""
    old = Decimal(safe_ceil(old_sale_price))
    pct = Decimal(clean_discount(discount))
    price = (old * (Decimal(100) - pct) / Decimal(100)).to_integral_value(rounding=ROUND_CEILING)
    return max(int(price), 0)


def calculate_new_sale_price(rows: Iterable[RawRow]) -> list[RawRow]:
    return [
        {**row, "sale_price": discounted_price(row.get("old_sale_price"), row.get("discount", 0))}
        for row in rows
    ]


def finalize_data(rows: Iterable[RawRow]) -> list[RawRow]:
    return [{k: v for k, v in row.items() if k != "discount"} for row in rows]
