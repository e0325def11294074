"""Shopify Admin REST API adapter.

Catalog pages are followed through the `Link` header cursor (`page_info`).
Every request waits out a minimum interval first, and rate-limit responses
are retried with backoff.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional, Union

import httpx

from ..config import RetryConfig
from ..errors import ApiLimitError, AuthenticationError, PriceSyncError
from ..models import ListingRecord, Platform, ShopifyCredentials, parse_credentials
from .base import PlatformClient, PriceLike, format_price, validate_id, validate_price
from .http import DEFAULT_TIMEOUT, RequestThrottle, Sleep

logger = logging.getLogger(__name__)

API_VERSION = "2023-10"
PAGE_LIMIT = 250
MAX_PAGES = 1000
DEFAULT_MIN_INTERVAL = 0.5


def normalize_shop_domain(shop_domain: str) -> str:
    """`https://my-shop.myshopify.com/admin` -> `my-shop`."""
    domain = re.sub(r"^https?://", "", shop_domain.strip())
    domain = re.sub(r"/.*$", "", domain)
    return re.sub(r"\.myshopify\.com$", "", domain)


def next_page_info(response: httpx.Response) -> Optional[str]:
    """Cursor of the `rel="next"` link, if any."""
    next_link = response.links.get("next")
    if not next_link or not next_link.get("url"):
        return None
    return httpx.URL(next_link["url"]).params.get("page_info")


def flatten_variants(product: dict[str, Any]) -> list[ListingRecord]:
    product_id = int(product["id"])
    return [
        ListingRecord(
            id=int(variant["id"]),
            sku=variant.get("sku") or "",
            price=str(variant.get("price") or "0"),
            title=variant.get("title") or "",
            product_id=product_id,
        )
        for variant in product.get("variants") or []
    ]


class ShopifyClient(PlatformClient):
    """Variant-level catalog access and price writes for Shopify."""

    name = "Shopify"
    platform = Platform.SHOPIFY

    def __init__(
        self,
        *,
        min_request_interval: float = DEFAULT_MIN_INTERVAL,
        retry: Optional[RetryConfig] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(
            retry=retry or RetryConfig(),
            retry_on=(ApiLimitError,),
            throttle=RequestThrottle(min_request_interval, sleep=sleep),
            timeout=timeout,
            transport=transport,
            sleep=sleep,
        )
        self.authenticated = False
        self.shop_domain = ""

    async def authenticate(
        self, credentials: Union[ShopifyCredentials, dict[str, Any]]
    ) -> None:
        if not isinstance(credentials, ShopifyCredentials):
            credentials = parse_credentials(Platform.SHOPIFY, credentials)

        await self.close()
        self.authenticated = False
        self.shop_domain = normalize_shop_domain(credentials.shop_domain)
        if not self.shop_domain:
            raise AuthenticationError("Shopify credentials not provided: shop_domain")

        self._http = self._build_http(
            base_url=f"https://{self.shop_domain}.myshopify.com/admin/api/{API_VERSION}",
            headers={"X-Shopify-Access-Token": credentials.access_token},
        )

        try:
            await self._request("GET", "/products.json", params={"limit": 1})
        except PriceSyncError as e:
            await self.close()
            raise AuthenticationError(f"Shopify authentication failed: {e}") from e

        self.authenticated = True
        logger.info(f"[Shopify] Authentication successful for {self.shop_domain}")

    async def get_all_products(self) -> list[ListingRecord]:
        self._require_authenticated()

        listings: list[ListingRecord] = []
        params: dict[str, Any] = {"limit": PAGE_LIMIT}
        for _ in range(MAX_PAGES):
            response = await self._request("GET", "/products.json", params=params)
            for product in response.json().get("products") or []:
                listings.extend(flatten_variants(product))

            cursor = next_page_info(response)
            if not cursor:
                break
            params = {"limit": PAGE_LIMIT, "page_info": cursor}
        else:
            logger.warning(f"[Shopify] Page ceiling ({MAX_PAGES}) reached")

        logger.info(f"[Shopify] Fetched {len(listings)} variants")
        return listings

    async def update_price(self, listing: ListingRecord, new_price: PriceLike) -> None:
        self._require_authenticated()
        product_id = validate_id(listing.product_id, "product ID")
        variant_id = validate_id(listing.id, "variant ID")
        price = format_price(validate_price(new_price))

        await self._request("GET", f"/variants/{variant_id}.json")
        await self._request(
            "PUT",
            f"/variants/{variant_id}.json",
            json={"variant": {"id": variant_id, "price": price}},
        )
        logger.info(
            f"[Shopify] Updated product {product_id} variant {variant_id} price to {price}"
        )
