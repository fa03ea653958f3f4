from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""Row-level domain models for the transform pipeline.

RawRow is what the spreadsheet reader yields; CanonicalStockRecord is the
pipeline output that the reconciliation engine consumes.
"""

__all__ = [
    "RawRow",
    "CanonicalStockRecord",
    "EXPORT_COLUMNS",
]

RawRow = dict[str, Any]

# CSV 出力時の列ラベル (元データの表記に合わせる)
EXPORT_COLUMNS = [
    "SKU",
    "REGULAR PRICE",
    "SALE PRICE",
    "STOCK",
    "OLD SALE PRICE",
    "PURCHASE RATE",
]


@dataclass(frozen=True)
class CanonicalStockRecord:
    """Normalized per-SKU pricing/stock record produced by one pipeline run.

    All monetary and quantity values are whole units (ceiled during cleaning).
    """
    sku: str
    regular_price: int
    sale_price: int
    stock: int
    old_sale_price: int
    purchase_rate: int

    def to_export_row(self) -> dict[str, Any]:
        return {
            "SKU": self.sku,
            "REGULAR PRICE": self.regular_price,
            "SALE PRICE": self.sale_price,
            "STOCK": self.stock,
            "OLD SALE PRICE": self.old_sale_price,
            "PURCHASE RATE": self.purchase_rate,
        }
