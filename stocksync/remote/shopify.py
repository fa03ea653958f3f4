from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from stocksync.models.site import Platform, SiteConfig
from stocksync.models.sync import ItemError, UpdateInstruction, UpdateOutcome

from .base import DEFAULT_TIMEOUT, OrderPage, RateLimiter, RemoteCatalogClient, RemoteProductRecord
from .errors import RemoteApiError

"""Shopify Admin REST client.

- X-Shopify-Access-Token header on ``{base_url}/admin/api/{version}/``
- Link header (rel="next") cursor pagination
- >= 500 ms between consecutive calls (per client instance)
- Price mapping: ``price`` is the sale price, ``compare_at_price`` the
  regular price (null when the regular price is not positive)
- Stock is written through inventory_levels/set at the site's location
"""

__all__ = [
    "ShopifyClient",
    "MIN_CALL_INTERVAL",
]

logger = logging.getLogger(__name__)

MIN_CALL_INTERVAL = 0.5
PRODUCTS_PAGE_LIMIT = 250
ORDERS_PAGE_LIMIT = 25


class ShopifyClient(RemoteCatalogClient):
    platform = Platform.SHOPIFY

    def __init__(
        self,
        site: SiteConfig,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        super().__init__(site, session=session, timeout=timeout)
        self.rate_limiter = rate_limiter or RateLimiter(MIN_CALL_INTERVAL)

    def _configure_session(self, session: requests.Session) -> None:
        session.headers.update({
            "X-Shopify-Access-Token": self.site.credential("access_token") or "",
            "Content-Type": "application/json",
        })

    def _before_request(self) -> None:
        self.rate_limiter.wait()

    @property
    def _root(self) -> str:
        return f"{self.site.base_url}/admin/api/{self.site.api_version}/"

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            if not path_or_url.startswith(self._root):
                raise ValueError(f"refusing to follow link outside {self._root}: {path_or_url}")
            return path_or_url
        path, _, query = path_or_url.lstrip("/").partition("?")
        if not path.endswith(".json"):
            path += ".json"
        return self._root + path + (f"?{query}" if query else "")

    def fetch_products_by_sku(self, skus: Sequence[str]) -> list[RemoteProductRecord]:
        """Walk the product listing until every wanted SKU was seen or pages run out."""
        wanted = set(skus)
        found: list[RemoteProductRecord] = []
        next_url: str | None = "products"
        params: dict[str, Any] | None = {"limit": PRODUCTS_PAGE_LIMIT, "fields": "id,title,variants"}
        pages = 0
        while next_url and wanted:
            response = self._request("GET", next_url, params=params)
            pages += 1
            products = (self._json(response) or {}).get("products") or []
            if not products:
                break
            for product in products:
                for variant in product.get("variants") or []:
                    sku = variant.get("sku")
                    if sku and sku in wanted:
                        found.append(self._to_record(product, variant))
                        wanted.discard(sku)
            next_url = self._next_link(response)
            params = None
        logger.debug(f"shopify: {len(found)} variants matched after {pages} page(s)")
        return found

    @staticmethod
    def _to_record(product: dict[str, Any], variant: dict[str, Any]) -> RemoteProductRecord:
        title = product.get("title") or "Product"
        return RemoteProductRecord(
            remote_id=int(variant["id"]),
            sku=str(variant["sku"]),
            regular_price=variant.get("compare_at_price"),
            sale_price=variant.get("price"),
            stock_quantity=variant.get("inventory_quantity"),
            name=f"{title} - {variant.get('title') or ''}".rstrip(" -"),
            inventory_item_id=variant.get("inventory_item_id"),
        )

    def _new_regular_price(self, value: int) -> Any:
        return str(value) if value > 0 else None

    def _update_one(self, item: UpdateInstruction) -> None:
        if item.inventory_item_id is None:
            raise RemoteApiError(None, "variant has no inventory_item_id", "shopify")
        self._request(
            "PUT",
            f"variants/{item.remote_id}",
            json={"variant": {
                "id": item.remote_id,
                "price": str(item.sale_price),
                "compare_at_price": self._new_regular_price(item.regular_price),
            }},
        )
        self._request(
            "POST",
            "inventory_levels/set",
            json={
                "location_id": self.site.location_id,
                "inventory_item_id": item.inventory_item_id,
                "available": item.stock_quantity,
            },
        )

    def update_products(self, instructions: Sequence[UpdateInstruction]) -> UpdateOutcome:
        """Variant-by-variant updates; one failure never blocks the others."""
        outcome = UpdateOutcome()
        for item in instructions:
            try:
                self._update_one(item)
            except RemoteApiError as e:
                logger.warning(f"shopify: variant {item.remote_id} ({item.sku}) failed: {e}")
                outcome.errors.append(
                    ItemError(f"variant_id: {item.remote_id}", item.sku, str(e), e.error_type)
                )
            else:
                outcome.updated.append(item)
        return outcome

    def fetch_orders(self, cursor: str | None = None) -> OrderPage:
        if cursor:
            response = self._request("GET", cursor)
        else:
            response = self._request("GET", "orders", params={"limit": ORDERS_PAGE_LIMIT, "status": "any"})
        orders = (self._json(response) or {}).get("orders") or []
        return OrderPage(orders=orders, next_cursor=self._next_link(response))

    def fetch_order(self, order_id: int) -> dict[str, Any]:
        return self._json(self._request("GET", f"orders/{order_id}"))["order"]

    def cancel_order(self, order_id: int) -> dict[str, Any]:
        return self._json(self._request("POST", f"orders/{order_id}/cancel", json={}))["order"]

    def test_connection(self) -> dict[str, Any]:
        return self._json(self._request("GET", "shop"))["shop"]
