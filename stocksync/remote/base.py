from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import requests

from stocksync.models.records import CanonicalStockRecord
from stocksync.models.site import Platform, SiteConfig
from stocksync.models.sync import ChangeSet, FieldChange, UpdateInstruction, UpdateOutcome

from .errors import RemoteApiError, error_for_status

"""Platform-neutral remote catalog contract.

A client instance is bound to exactly one SiteConfig and owns its own HTTP
session and rate limiter state. Concrete platforms implement the URL scheme,
credential placement, pagination and field mapping.
"""

__all__ = [
    "DEFAULT_TIMEOUT",
    "OrderPage",
    "RateLimiter",
    "RemoteProductRecord",
    "RemoteCatalogClient",
    "prices_equal",
]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
BODY_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class RemoteProductRecord:
    """Product (WooCommerce) or variant (Shopify) as returned by the provider.

    Prices are the provider's decimal strings, unparsed.
    """
    remote_id: int
    sku: str
    regular_price: str | None
    sale_price: str | None
    stock_quantity: int | None
    name: str
    inventory_item_id: int | None = None


@dataclass(frozen=True)
class OrderPage:
    orders: list[dict[str, Any]]
    next_cursor: str | None  # opaque; pass back to fetch_orders()


class RateLimiter:
    """Client-side minimum spacing between consecutive calls.

    Cooperative and per instance; not a distributed limiter.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    def wait(self) -> None:
        now = self._clock()
        if self._last_call is not None:
            elapsed = now - self._last_call
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
                now = self._clock()
        self._last_call = now


def _decimal(value: Any) -> Decimal | None:
    if value is None:
        return Decimal(0)
    text = str(value).strip()
    if text == "":
        return Decimal(0)
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def prices_equal(remote: Any, new: int) -> bool:
    """Exact numeric equality of a provider price string and a canonical price.

    ``"120.00" == 120``; blank / None remote prices count as 0; unparseable
    remote values never compare equal.
    """
    parsed = _decimal(remote)
    return parsed is not None and parsed == Decimal(new)


class RemoteCatalogClient(ABC):
    """Uniform read/write contract over one remote store."""

    platform: Platform

    def __init__(
        self,
        site: SiteConfig,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.site = site
        self.timeout = timeout
        self.session = session or requests.Session()
        self._configure_session(self.session)

    # -- transport -----------------------------------------------------

    def _configure_session(self, session: requests.Session) -> None:
        """Attach credentials to the session."""

    def _before_request(self) -> None:
        """Hook run before every HTTP call (rate limiting)."""

    @abstractmethod
    def _url(self, path_or_url: str) -> str:
        ...

    def _request(
        self,
        method: str,
        path_or_url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> requests.Response:
        url = self._url(path_or_url)
        self._before_request()
        logger.debug(f"{self.platform.value} {method} {url}")
        try:
            response = self.session.request(
                method, url, params=params, json=json, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RemoteApiError(None, str(e), self.platform.value) from e
        if not 200 <= response.status_code < 300:
            raise error_for_status(
                response.status_code, response.text[:BODY_PREVIEW_CHARS], self.platform.value
            )
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(
                response.status_code, f"non-JSON response: {response.text[:BODY_PREVIEW_CHARS]}",
                self.platform.value,
            ) from e

    @staticmethod
    def _next_link(response: requests.Response) -> str | None:
        return response.links.get("next", {}).get("url")

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> RemoteCatalogClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # -- catalog contract ----------------------------------------------

    @abstractmethod
    def fetch_products_by_sku(self, skus: Sequence[str]) -> list[RemoteProductRecord]:
        ...

    @abstractmethod
    def update_products(self, instructions: Sequence[UpdateInstruction]) -> UpdateOutcome:
        """Apply updates; item failures are returned, never raised."""

    @abstractmethod
    def fetch_orders(self, cursor: str | None = None) -> OrderPage:
        ...

    @abstractmethod
    def fetch_order(self, order_id: int) -> dict[str, Any]:
        ...

    @abstractmethod
    def cancel_order(self, order_id: int) -> dict[str, Any]:
        ...

    @abstractmethod
    def test_connection(self) -> dict[str, Any]:
        ...

    # -- diffing -------------------------------------------------------

    def _new_regular_price(self, value: int) -> Any:
        return str(value)

    def diff(self, record: CanonicalStockRecord, remote: RemoteProductRecord) -> ChangeSet:
        """Fields whose canonical value differs from the remote value."""
        changes: ChangeSet = {}
        if not prices_equal(remote.regular_price, record.regular_price):
            changes["regular_price"] = FieldChange(
                "regular_price", remote.regular_price, self._new_regular_price(record.regular_price)
            )
        if not prices_equal(remote.sale_price, record.sale_price):
            changes["sale_price"] = FieldChange("sale_price", remote.sale_price, str(record.sale_price))
        if remote.stock_quantity is None or int(remote.stock_quantity) != record.stock:
            changes["stock_quantity"] = FieldChange("stock_quantity", remote.stock_quantity, record.stock)
        return changes

    def build_instruction(
        self, record: CanonicalStockRecord, remote: RemoteProductRecord
    ) -> UpdateInstruction:
        return UpdateInstruction(
            remote_id=remote.remote_id,
            sku=record.sku,
            regular_price=record.regular_price,
            sale_price=record.sale_price,
            stock_quantity=record.stock,
            inventory_item_id=remote.inventory_item_id,
        )
