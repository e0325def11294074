"""
Domain models for the price sync engine.

Feed records, platform listings, match results, store configuration,
credentials and sync outcomes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter

from .errors import AuthenticationError, ErrorKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    """Supported merchant platforms."""

    WOOCOMMERCE = "woocommerce"
    SHOPIFY = "shopify"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class ProductSyncStatus(str, Enum):
    REPRICED = "repriced"
    PENDING = "pending"
    UNLISTED = "unlisted"


class RunState(str, Enum):
    """Orchestrator states for a single run, in order."""

    IDLE = "idle"
    STARTED = "started"
    FETCHING_SOURCE = "fetching_source"
    FETCHING_PLATFORM = "fetching_platform"
    MATCHING = "matching"
    APPLYING = "applying"
    FINALIZED = "finalized"


# =========================================================================
# Feed and platform records
# =========================================================================


class FeedRecord(BaseModel):
    """A priced item reported by the pricing feed."""

    model_config = ConfigDict(frozen=True)

    id: str
    sku: str = ""
    name: str = ""
    price: Decimal
    currency: str = "USD"
    last_updated: datetime = Field(default_factory=utcnow)


class ListingRecord(BaseModel):
    """A sellable unit on a merchant platform.

    For Shopify this is a variant; `product_id` holds the parent product id
    needed by the update call. WooCommerce listings leave it unset.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    sku: str = ""
    price: str = "0"
    title: str = ""
    product_id: Optional[int] = None


class MatchedPair(BaseModel):
    feed_record: FeedRecord
    listing: ListingRecord
    confidence: float


class MatchResult(BaseModel):
    matched: list[MatchedPair] = Field(default_factory=list)
    unlisted: list[FeedRecord] = Field(default_factory=list)


# =========================================================================
# Store configuration and credentials
# =========================================================================


class StoreConfig(BaseModel):
    """Store definition owned by the ConfigStore.

    `credentials` is an opaque (encrypted) blob; the engine only passes it
    back to the ConfigStore's decryption accessor.
    """

    store_id: str
    store_name: str = ""
    platform: Platform
    sync_interval_minutes: int = Field(default=60, ge=1)
    enabled: bool = True
    credentials: Any = None


class WooCommerceCredentials(BaseModel):
    """Credentials for platform A (WooCommerce REST API)."""

    model_config = ConfigDict(populate_by_name=True)

    platform: Literal[Platform.WOOCOMMERCE] = Platform.WOOCOMMERCE
    base_url: str = Field(
        min_length=1, validation_alias=AliasChoices("base_url", "baseUrl", "url")
    )
    key: str = Field(
        min_length=1, validation_alias=AliasChoices("key", "consumerKey", "consumer_key")
    )
    secret: str = Field(
        min_length=1,
        validation_alias=AliasChoices("secret", "consumerSecret", "consumer_secret"),
    )


class ShopifyCredentials(BaseModel):
    """Credentials for platform B (Shopify Admin REST API)."""

    model_config = ConfigDict(populate_by_name=True)

    platform: Literal[Platform.SHOPIFY] = Platform.SHOPIFY
    shop_domain: str = Field(
        min_length=1, validation_alias=AliasChoices("shop_domain", "shopDomain")
    )
    access_token: str = Field(
        min_length=1, validation_alias=AliasChoices("access_token", "accessToken")
    )


PlatformCredentials = Annotated[
    Union[WooCommerceCredentials, ShopifyCredentials],
    Field(discriminator="platform"),
]

_credentials_adapter = TypeAdapter(PlatformCredentials)


def parse_credentials(
    platform: Platform, raw: dict[str, Any]
) -> Union[WooCommerceCredentials, ShopifyCredentials]:
    """Build the typed credentials for `platform` from a decrypted key-value map.

    Raises:
        AuthenticationError: required fields are missing or empty.
    """
    payload = {k: v for k, v in (raw or {}).items() if k != "platform"}
    payload["platform"] = Platform(platform)
    try:
        return _credentials_adapter.validate_python(payload)
    except pydantic.ValidationError as e:
        missing = sorted({".".join(str(p) for p in err["loc"][1:]) for err in e.errors()})
        raise AuthenticationError(
            f"{Platform(platform).value} credentials not provided: {', '.join(missing)}"
        ) from e


# =========================================================================
# Outcomes
# =========================================================================


class SyncItemError(BaseModel):
    item_id: str
    message: str
    kind: ErrorKind


class SyncOutcome(BaseModel):
    """Result of one run for one store."""

    store_id: str
    repriced_count: int = 0
    pending_count: int = 0
    unlisted_count: int = 0
    errors: list[SyncItemError] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
    status: SyncStatus = SyncStatus.IN_PROGRESS
    error_message: Optional[str] = None

    @property
    def attempted_count(self) -> int:
        return self.repriced_count + self.pending_count

    @property
    def total_count(self) -> int:
        return self.repriced_count + self.pending_count + self.unlisted_count

    def derive_status(self) -> SyncStatus:
        """`failed` when every attempted item failed, `partial` when some did."""
        if not self.errors:
            return SyncStatus.SUCCESS
        if len(self.errors) == self.attempted_count:
            return SyncStatus.FAILED
        return SyncStatus.PARTIAL

    def finalize(self, aborted: bool = False) -> "SyncOutcome":
        self.status = SyncStatus.FAILED if aborted else self.derive_status()
        self.timestamp = utcnow()
        if self.errors:
            self.error_message = "; ".join(f"{e.item_id}: {e.message}" for e in self.errors)
        return self


class ProductStatusEntry(BaseModel):
    """Per (store, platform product) status, upserted on every sync."""

    store_id: str
    platform_product_id: str
    feed_record_id: str
    sku: str = ""
    status: ProductSyncStatus
    last_attempt: datetime = Field(default_factory=utcnow)
    last_success: Optional[datetime] = None
    current_price: Decimal = Decimal("0")
    target_price: Decimal = Decimal("0")
    error_message: Optional[str] = None


class AuditEntry(BaseModel):
    store_id: str
    product_id: str
    action: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    details: Optional[str] = None


class SyncEvent(BaseModel):
    """Progress event broadcast to observers of a store."""

    store_id: str
    type: str
    message: str
    data: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utcnow)


__all__ = [
    "Platform",
    "SyncStatus",
    "ProductSyncStatus",
    "RunState",
    "FeedRecord",
    "ListingRecord",
    "MatchedPair",
    "MatchResult",
    "StoreConfig",
    "WooCommerceCredentials",
    "ShopifyCredentials",
    "PlatformCredentials",
    "parse_credentials",
    "SyncItemError",
    "SyncOutcome",
    "ProductStatusEntry",
    "AuditEntry",
    "SyncEvent",
    "utcnow",
]
