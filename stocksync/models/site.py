from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Site configuration model (one remote commerce store)."""

__all__ = [
    "Platform",
    "SiteConfig",
]


class Platform(Enum):
    """Supported remote commerce platforms."""
    WORDPRESS = "wordpress"  # WooCommerce REST API
    SHOPIFY = "shopify"      # Shopify Admin REST API


@dataclass(frozen=True)
class SiteConfig:
    """Connection context for a single store.

    Every remote call is scoped by one of these; there is no process-wide
    credential state.
    """
    name: str
    platform: Platform
    base_url: str
    credentials: dict[str, str] = field(default_factory=dict)
    currency_symbol: str = "₹"
    user: str = ""
    location_id: int | None = None  # Shopify inventory location
    api_version: str = "2023-10"    # Shopify only

    def credential(self, key: str) -> str | None:
        value = self.credentials.get(key)
        return value or None
