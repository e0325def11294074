"""
Shared fixtures for pricesync tests.
"""

from decimal import Decimal

import pytest

from pricesync.models import FeedRecord, ListingRecord, Platform, StoreConfig


class RecordingSleep:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def woo_store():
    return StoreConfig(
        store_id="woo-1",
        store_name="Woo Shop",
        platform=Platform.WOOCOMMERCE,
        sync_interval_minutes=30,
        credentials={
            "baseUrl": "https://shop.example.com",
            "consumerKey": "ck_test",
            "consumerSecret": "cs_test",
        },
    )


@pytest.fixture
def shopify_store():
    return StoreConfig(
        store_id="shop-1",
        store_name="Shopify Shop",
        platform=Platform.SHOPIFY,
        credentials={"shopDomain": "my-shop", "accessToken": "shpat_test"},
    )


def feed_record(id: str, sku: str, price: str) -> FeedRecord:
    return FeedRecord(id=id, sku=sku, name=f"Item {id}", price=Decimal(price))


def listing(id: int, sku: str, price: str, product_id=None) -> ListingRecord:
    return ListingRecord(id=id, sku=sku, price=price, title=f"Listing {id}", product_id=product_id)
