from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from stocksync.models.site import Platform
from stocksync.models.sync import ItemError, UpdateInstruction, UpdateOutcome

from .base import OrderPage, RemoteCatalogClient, RemoteProductRecord
from .errors import RemoteApiError

"""WooCommerce REST v3 client (platform "wordpress").

Credentials travel as consumer_key / consumer_secret query parameters on
``{base_url}/wp-json/wc/v3/``. WooCommerce caps list and batch endpoints at
100 items per request.
"""

__all__ = [
    "WooCommerceClient",
]

logger = logging.getLogger(__name__)

API_PREFIX = "/wp-json/wc/v3/"
MAX_PER_PAGE = 100
ORDERS_PER_PAGE = 25
UNKNOWN_FAILURE = "Update failed for an unknown reason."


def _chunks(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class WooCommerceClient(RemoteCatalogClient):
    platform = Platform.WORDPRESS

    def _configure_session(self, session: requests.Session) -> None:
        session.params = {
            "consumer_key": self.site.credential("consumer_key"),
            "consumer_secret": self.site.credential("consumer_secret"),
        }
        session.headers.update({"Content-Type": "application/json"})

    def _url(self, path_or_url: str) -> str:
        root = f"{self.site.base_url}{API_PREFIX}"
        if path_or_url.startswith(("http://", "https://")):
            # ページングの next リンクは同一サイトのみ許可 (認証情報の漏洩防止)
            if not path_or_url.startswith(root):
                raise ValueError(f"refusing to follow link outside {root}: {path_or_url}")
            return path_or_url
        return root + path_or_url.lstrip("/")

    @staticmethod
    def _to_record(product: dict[str, Any]) -> RemoteProductRecord:
        return RemoteProductRecord(
            remote_id=int(product["id"]),
            sku=str(product.get("sku") or ""),
            regular_price=product.get("regular_price"),
            sale_price=product.get("sale_price"),
            stock_quantity=product.get("stock_quantity"),
            name=product.get("name") or "",
        )

    def fetch_products_by_sku(self, skus: Sequence[str]) -> list[RemoteProductRecord]:
        found: list[RemoteProductRecord] = []
        for chunk in _chunks(list(skus), MAX_PER_PAGE):
            next_url: str | None = "products"
            params: dict[str, Any] | None = {"sku": ",".join(chunk), "per_page": MAX_PER_PAGE}
            while next_url:
                response = self._request("GET", next_url, params=params)
                products = self._json(response) or []
                found.extend(self._to_record(p) for p in products if p.get("sku"))
                next_url = self._next_link(response)
                params = None  # next リンクはクエリ込み
        logger.debug(f"woocommerce: {len(found)} products matched {len(skus)} skus")
        return found

    @staticmethod
    def _payload(item: UpdateInstruction) -> dict[str, Any]:
        return {
            "id": item.remote_id,
            "regular_price": str(item.regular_price),
            "sale_price": str(item.sale_price),
            "stock_quantity": item.stock_quantity,
        }

    def _update_chunk(self, chunk: Sequence[UpdateInstruction]) -> UpdateOutcome:
        outcome = UpdateOutcome()
        try:
            response = self._request(
                "POST", "products/batch", json={"update": [self._payload(i) for i in chunk]}
            )
            result = self._json(response) or {}
        except RemoteApiError as e:
            logger.warning(f"woocommerce batch update failed for {len(chunk)} items: {e}")
            outcome.errors.extend(
                ItemError(f"ID: {i.remote_id}", i.sku, str(e), e.error_type) for i in chunk
            )
            return outcome

        echoed: dict[int, dict[str, Any]] = {}
        for entry in result.get("update") or []:
            if isinstance(entry, dict) and entry.get("id") is not None:
                echoed[int(entry["id"])] = entry
        for item in chunk:
            entry = echoed.get(item.remote_id)
            if entry is None:
                outcome.errors.append(ItemError(f"ID: {item.remote_id}", item.sku, UNKNOWN_FAILURE))
            elif entry.get("error"):
                err = entry["error"]
                message = err.get("message") if isinstance(err, dict) else str(err)
                outcome.errors.append(ItemError(f"ID: {item.remote_id}", item.sku, message or UNKNOWN_FAILURE))
            else:
                outcome.updated.append(item)
        return outcome

    def update_products(self, instructions: Sequence[UpdateInstruction]) -> UpdateOutcome:
        outcome = UpdateOutcome()
        for chunk in _chunks(list(instructions), MAX_PER_PAGE):
            outcome.extend(self._update_chunk(chunk))
        return outcome

    def fetch_orders(self, cursor: str | None = None) -> OrderPage:
        page = int(cursor) if cursor else 1
        response = self._request(
            "GET",
            "orders",
            params={"per_page": ORDERS_PER_PAGE, "page": page, "orderby": "date", "order": "desc"},
        )
        orders = self._json(response) or []
        total_pages = response.headers.get("X-WP-TotalPages")
        if total_pages is not None and total_pages.isdigit():
            has_more = page < int(total_pages)
        else:
            has_more = len(orders) == ORDERS_PER_PAGE
        return OrderPage(orders=orders, next_cursor=str(page + 1) if has_more else None)

    def fetch_order(self, order_id: int) -> dict[str, Any]:
        return self._json(self._request("GET", f"orders/{order_id}"))

    def cancel_order(self, order_id: int) -> dict[str, Any]:
        return self._json(self._request("PUT", f"orders/{order_id}", json={"status": "cancelled"}))

    def test_connection(self) -> dict[str, Any]:
        return self._json(self._request("GET", "system_status"))
