"""Remote catalog clients (WooCommerce, Shopify) behind one contract."""

from __future__ import annotations

import requests

from stocksync.models.site import Platform, SiteConfig

from .base import OrderPage, RateLimiter, RemoteCatalogClient, RemoteProductRecord, prices_equal
from .errors import AuthenticationFailed, PermissionDenied, RateLimitExceeded, RemoteApiError
from .shopify import ShopifyClient
from .woocommerce import WooCommerceClient

__all__ = [
    "AuthenticationFailed",
    "OrderPage",
    "PermissionDenied",
    "RateLimitExceeded",
    "RateLimiter",
    "RemoteApiError",
    "RemoteCatalogClient",
    "RemoteProductRecord",
    "ShopifyClient",
    "WooCommerceClient",
    "build_client",
    "prices_equal",
]


_CLIENTS: dict[Platform, type[RemoteCatalogClient]] = {
    Platform.WORDPRESS: WooCommerceClient,
    Platform.SHOPIFY: ShopifyClient,
}


def build_client(site: SiteConfig, session: requests.Session | None = None) -> RemoteCatalogClient:
    """Pick the concrete client for the site's platform (once, at construction)."""
    client_cls = _CLIENTS.get(site.platform)
    if client_cls is None:
        raise ValueError(f"unsupported platform: {site.platform}")
    return client_cls(site, session=session)
