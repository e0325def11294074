"""Platform client registry.

Maps a store's `Platform` to the adapter that talks to it.

Usage:
    client = platform_registry.create(Platform.SHOPIFY, min_request_interval=0.5)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Type

from ..errors import ConfigurationError
from ..models import Platform
from .base import PlatformClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., PlatformClient]


class PlatformRegistry:
    """Registry of platform client factories."""

    def __init__(self):
        self._factories: Dict[Platform, ClientFactory] = {}

    def register(self, platform: Platform) -> Callable[[Type], Type]:
        """Decorator to register a client class for a platform.

        Example:
            @platform_registry.register(Platform.SHOPIFY)
            class ShopifyClient(PlatformClient): ...
        """

        def decorator(cls: Type) -> Type:
            self._factories[Platform(platform)] = cls
            logger.debug(f"Registered platform client: {platform} -> {cls.__name__}")
            return cls

        return decorator

    def register_factory(self, platform: Platform, factory: ClientFactory) -> None:
        self._factories[Platform(platform)] = factory

    def create(self, platform: Any, **kwargs: Any) -> PlatformClient:
        """Instantiate the client for `platform`.

        Raises:
            ConfigurationError: the platform is unknown or has no client.
        """
        try:
            key = Platform(platform)
        except ValueError:
            raise ConfigurationError(f"Unsupported platform: {platform}") from None

        factory = self._factories.get(key)
        if factory is None:
            raise ConfigurationError(f"Unsupported platform: {key.value}")
        return factory(**kwargs)

    def list_platforms(self) -> list[str]:
        return [p.value for p in self._factories]


def default_registry() -> PlatformRegistry:
    """Registry with the built-in WooCommerce and Shopify clients."""
    from .shopify import ShopifyClient
    from .woocommerce import WooCommerceClient

    registry = PlatformRegistry()
    registry.register(Platform.WOOCOMMERCE)(WooCommerceClient)
    registry.register(Platform.SHOPIFY)(ShopifyClient)
    return registry


__all__ = ["PlatformRegistry", "default_registry"]
