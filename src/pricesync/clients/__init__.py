"""
HTTP clients for the pricing feed and the merchant platforms.

Components:
- feed: SourceFeedClient (StreetPricer)
- woocommerce / shopify: PlatformClient adapters
- registry: platform -> adapter lookup
- http: retry, backoff and throttling shared by all clients
"""

from .base import PlatformClient
from .feed import SourceFeedClient
from .registry import PlatformRegistry, default_registry
from .shopify import ShopifyClient
from .woocommerce import WooCommerceClient

__all__ = [
    "PlatformClient",
    "SourceFeedClient",
    "PlatformRegistry",
    "default_registry",
    "ShopifyClient",
    "WooCommerceClient",
]
