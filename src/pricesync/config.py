"""
Configuration for the price sync engine.

Uses Pydantic for validation and environment loading.
"""

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedConfig(BaseModel):
    """Connection settings for the pricing feed (StreetPricer API)."""

    api_url: str = Field(
        default="https://api.streetpricer.com/api/v1", description="Feed base URL"
    )
    api_key: str = Field(default="", description="Feed username / API key")
    api_secret: str = Field(default="", description="Feed password / API secret")
    stores_endpoint: str = Field(
        default="/stores", description="Sub-account listing endpoint"
    )
    products_endpoint: str = Field(
        default="/products", description="Flat product endpoint (fallback)"
    )
    max_pages: int = Field(default=1000, description="Hard pagination ceiling")
    store_pause_seconds: float = Field(
        default=1.0, description="Pause between sub-account fetches"
    )


class RetryConfig(BaseModel):
    """Retry-with-exponential-backoff policy for outbound HTTP calls."""

    max_attempts: int = Field(default=5, description="Total attempts per call")
    initial_delay: float = Field(default=2.0, description="First backoff (seconds)")
    multiplier: float = Field(default=3.0, description="Backoff multiplier")
    max_delay: float = Field(default=30.0, description="Backoff ceiling (seconds)")
    rate_limit_min_delay: float = Field(
        default=5.0, description="Minimum wait after a 429 without Retry-After"
    )


class SyncSettings(BaseSettings):
    """Master configuration for the price sync service.

    Loads from environment variables (and `.env`).
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    # Service identity
    service_name: str = Field(default="pricesync")
    log_level: str = Field(default="INFO")

    # HTTP
    request_timeout: float = Field(
        default=30.0, description="Per-call HTTP timeout in seconds"
    )
    shopify_min_request_interval: float = Field(
        default=0.5, description="Minimum seconds between Shopify requests"
    )

    # Scheduling
    scheduler_tick_seconds: int = Field(
        default=60, description="Seconds between scheduler ticks"
    )
    default_sync_interval_minutes: int = Field(default=60)

    # Reconciliation
    price_epsilon: float = Field(
        default=0.01, description="Price differences at or below this are ignored"
    )

    # File-backed stores
    stores_config_path: Optional[str] = Field(
        default=None, description="TOML file with store definitions"
    )
    status_store_path: str = Field(
        default="pricesync-status.json",
        description="JSON file holding sync outcomes and product statuses",
    )

    feed: FeedConfig = Field(default_factory=FeedConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Load configuration from environment variables."""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "pricesync"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30.0")),
            shopify_min_request_interval=float(
                os.getenv("SHOPIFY_MIN_REQUEST_INTERVAL", "0.5")
            ),
            scheduler_tick_seconds=int(os.getenv("SCHEDULER_TICK_SECONDS", "60")),
            default_sync_interval_minutes=int(
                os.getenv("DEFAULT_SYNC_INTERVAL", "60")
            ),
            price_epsilon=float(os.getenv("PRICE_EPSILON", "0.01")),
            stores_config_path=os.getenv("STORES_CONFIG_PATH"),
            status_store_path=os.getenv("STATUS_STORE_PATH", "pricesync-status.json"),
            feed=FeedConfig(
                api_url=os.getenv(
                    "STREETPRICER_API_URL", "https://api.streetpricer.com/api/v1"
                ),
                api_key=os.getenv("STREETPRICER_API_KEY", ""),
                api_secret=os.getenv("STREETPRICER_API_SECRET", ""),
                stores_endpoint=os.getenv("STREETPRICER_STORES_ENDPOINT", "/stores"),
                products_endpoint=os.getenv(
                    "STREETPRICER_PRODUCTS_ENDPOINT", "/products"
                ),
                max_pages=int(os.getenv("STREETPRICER_MAX_PAGES", "1000")),
                store_pause_seconds=float(
                    os.getenv("STREETPRICER_STORE_PAUSE_SEC", "1.0")
                ),
            ),
            retry=RetryConfig(
                max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "5")),
                initial_delay=float(os.getenv("RETRY_INITIAL_DELAY", "2.0")),
                multiplier=float(os.getenv("RETRY_MULTIPLIER", "3.0")),
                max_delay=float(os.getenv("RETRY_MAX_DELAY", "30.0")),
                rate_limit_min_delay=float(
                    os.getenv("RETRY_RATE_LIMIT_MIN_DELAY", "5.0")
                ),
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    """Get cached settings loaded from the environment."""
    return SyncSettings.from_env()
