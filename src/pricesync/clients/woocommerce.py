"""WooCommerce REST API (v3) adapter."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Union

import httpx

from ..errors import AuthenticationError, PriceSyncError
from ..models import ListingRecord, Platform, WooCommerceCredentials, parse_credentials
from .base import PlatformClient, PriceLike, format_price, validate_id, validate_price
from .http import DEFAULT_TIMEOUT, Sleep

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_PAGES = 1000


def to_listing(product: dict[str, Any]) -> ListingRecord:
    """Map a WooCommerce product object to a listing; missing price reads as "0"."""
    return ListingRecord(
        id=int(product["id"]),
        sku=product.get("sku") or "",
        price=str(product.get("price") or "0"),
        title=product.get("name") or "",
    )


class WooCommerceClient(PlatformClient):
    """Offset-paginated catalog access and price writes for WooCommerce."""

    name = "WooCommerce"
    platform = Platform.WOOCOMMERCE

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(timeout=timeout, transport=transport, sleep=sleep)
        self.authenticated = False
        self.store_url = ""

    async def authenticate(
        self, credentials: Union[WooCommerceCredentials, dict[str, Any]]
    ) -> None:
        if not isinstance(credentials, WooCommerceCredentials):
            credentials = parse_credentials(Platform.WOOCOMMERCE, credentials)

        await self.close()
        self.authenticated = False
        self.store_url = credentials.base_url.rstrip("/")
        self._http = self._build_http(
            base_url=f"{self.store_url}/wp-json/wc/v3",
            auth=(credentials.key, credentials.secret),
        )

        try:
            await self._request("GET", "/products", params={"per_page": 1})
        except PriceSyncError as e:
            await self.close()
            raise AuthenticationError(f"WooCommerce authentication failed: {e}") from e

        self.authenticated = True
        logger.info(f"[WooCommerce] Authentication successful for {self.store_url}")

    async def get_all_products(self) -> list[ListingRecord]:
        self._require_authenticated()

        listings: list[ListingRecord] = []
        for page in range(1, MAX_PAGES + 1):
            response = await self._request(
                "GET", "/products", params={"per_page": PER_PAGE, "page": page}
            )
            products = response.json() or []
            listings.extend(to_listing(p) for p in products)
            if len(products) < PER_PAGE:
                break
        else:
            logger.warning(f"[WooCommerce] Page ceiling ({MAX_PAGES}) reached")

        logger.info(f"[WooCommerce] Fetched {len(listings)} products")
        return listings

    async def update_price(self, listing: ListingRecord, new_price: PriceLike) -> None:
        self._require_authenticated()
        product_id = validate_id(listing.id, "product ID")
        price = format_price(validate_price(new_price))

        # Re-read to confirm the product still exists before writing
        await self._request("GET", f"/products/{product_id}")
        await self._request(
            "PUT",
            f"/products/{product_id}",
            json={"regular_price": price, "price": price},
        )
        logger.info(f"[WooCommerce] Updated product {product_id} price to {price}")
