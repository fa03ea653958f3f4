# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pandas as pd
import pytest
import requests

from stocksync.logging.init import reset_logging
from stocksync.models.site import Platform, SiteConfig
from stocksync.models.sync import ItemError, UpdateInstruction, UpdateOutcome
from stocksync.remote.base import OrderPage, RemoteCatalogClient, RemoteProductRecord

STOCK_HEADER = ["ITEM CODE", "ITEM NAME", "MRP", "SALE RATE", "PURCHASE RATE", "CLOSING STOCK QTY"]
DIRECTORY_HEADER = ["ITEM CODE", "ITEM NAME", "DISCOUNT", "MRP"]


@pytest.fixture(autouse=True)
def _clean_logging():
    # StreamHandler は生成時の sys.stdout を掴むため、テスト毎に作り直す
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


def _write_workbook(path: Path, header: list[str], rows: Sequence[Sequence[Any]]) -> Path:
    # 2 行のタイトル領域 + ヘッダ行 + データ行 (実際のレポートと同じ配置)
    pad = [None] * (len(header) - 1)
    grid: list[list[Any]] = [
        ["Closing Stock Report", *pad],
        ["Generated 2024-04-01", *pad],
        list(header),
    ]
    grid.extend(list(r) for r in rows)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(grid).to_excel(writer, index=False, header=False, sheet_name="Sheet1")
    return path


@pytest.fixture()
def write_stock_report(tmp_path: Path) -> Callable[..., Path]:
    def _factory(rows: Sequence[Sequence[Any]], name: str = "stock.xlsx") -> Path:
        return _write_workbook(tmp_path / name, STOCK_HEADER, rows)
    return _factory


@pytest.fixture()
def write_item_directory(tmp_path: Path) -> Callable[..., Path]:
    def _factory(rows: Sequence[Sequence[Any]], name: str = "directory.xlsx") -> Path:
        return _write_workbook(tmp_path / name, DIRECTORY_HEADER, rows)
    return _factory


@pytest.fixture()
def woo_site() -> SiteConfig:
    return SiteConfig(
        name="main-store",
        platform=Platform.WORDPRESS,
        base_url="https://shop.example.com",
        credentials={"consumer_key": "ck_test", "consumer_secret": "cs_test"},
        user="admin",
    )


@pytest.fixture()
def shopify_site() -> SiteConfig:
    return SiteConfig(
        name="outlet",
        platform=Platform.SHOPIFY,
        base_url="https://outlet.myshopify.com",
        credentials={"access_token": "shpat_test"},
        location_id=777,
    )


def _response(
    status: int = 200,
    payload: Any = None,
    headers: dict[str, str] | None = None,
    text: str | None = None,
) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    body = text if text is not None else json.dumps(payload if payload is not None else {})
    r._content = body.encode("utf-8")
    r.encoding = "utf-8"
    r.headers.update(headers or {})
    return r


@pytest.fixture()
def http_response() -> Callable[..., requests.Response]:
    return _response


@pytest.fixture()
def mock_session() -> MagicMock:
    """Session double; tests set ``session.request.side_effect`` / ``return_value``."""
    session = MagicMock()
    session.headers = {}
    session.params = {}
    return session


class FakeCatalogClient(RemoteCatalogClient):
    """In-memory catalog matched by SKU."""
    platform = Platform.WORDPRESS

    def __init__(
        self,
        site: SiteConfig,
        products: Sequence[RemoteProductRecord] = (),
        fail_skus: Sequence[str] = (),
        fetch_error: Exception | None = None,
        update_error: Exception | None = None,
    ) -> None:
        super().__init__(site, session=MagicMock())
        self.products = list(products)
        self.fail_skus = set(fail_skus)
        self.fetch_error = fetch_error
        self.update_error = update_error
        self.fetch_calls: list[list[str]] = []
        self.update_calls: list[list[UpdateInstruction]] = []

    def _url(self, path_or_url: str) -> str:
        return path_or_url

    def fetch_products_by_sku(self, skus):
        self.fetch_calls.append(list(skus))
        if self.fetch_error is not None:
            raise self.fetch_error
        wanted = set(skus)
        return [p for p in self.products if p.sku in wanted]

    def update_products(self, instructions):
        self.update_calls.append(list(instructions))
        if self.update_error is not None:
            raise self.update_error
        outcome = UpdateOutcome()
        for item in instructions:
            if item.sku in self.fail_skus:
                outcome.errors.append(ItemError(f"ID: {item.remote_id}", item.sku, f"rejected {item.sku}"))
            else:
                outcome.updated.append(item)
        return outcome

    def fetch_orders(self, cursor=None):
        return OrderPage(orders=[], next_cursor=None)

    def fetch_order(self, order_id):
        return {"id": order_id}

    def cancel_order(self, order_id):
        return {"id": order_id, "status": "cancelled"}

    def test_connection(self):
        return {"ok": True}


@pytest.fixture()
def fake_client(woo_site: SiteConfig) -> Callable[..., FakeCatalogClient]:
    def _factory(**kwargs: Any) -> FakeCatalogClient:
        return FakeCatalogClient(woo_site, **kwargs)
    return _factory


@pytest.fixture()
def remote_product() -> Callable[..., RemoteProductRecord]:
    def _factory(
        sku: str,
        remote_id: int = 1,
        regular: str | None = "100",
        sale: str | None = "90",
        stock: int | None = 5,
        name: str | None = None,
        inventory_item_id: int | None = None,
    ) -> RemoteProductRecord:
        return RemoteProductRecord(
            remote_id=remote_id,
            sku=sku,
            regular_price=regular,
            sale_price=sale,
            stock_quantity=stock,
            name=name or f"Product {sku}",
            inventory_item_id=inventory_item_id,
        )
    return _factory
