"""
PriceSync - keeps merchant store prices in line with a pricing feed.

Provides:
- SourceFeedClient: authoritative feed (StreetPricer)
- WooCommerceClient, ShopifyClient: platform adapters
- SyncOrchestrator: Fetch -> Match -> Apply -> Record for one store
- SchedulerService: periodic runs across stores

Usage:
    from pricesync import SyncOrchestrator, SourceFeedClient
    from pricesync.stores import InMemoryConfigStore, InMemoryStatusStore, InMemoryAuditSink

    orchestrator = SyncOrchestrator(
        feed_client=SourceFeedClient(settings.feed, settings.retry),
        config_store=InMemoryConfigStore([store]),
        status_store=InMemoryStatusStore(),
        audit_sink=InMemoryAuditSink(),
    )
    outcome = await orchestrator.sync_store(store)
"""

__version__ = "0.1.0"

from .clients import (
    PlatformClient,
    PlatformRegistry,
    ShopifyClient,
    SourceFeedClient,
    WooCommerceClient,
    default_registry,
)
from .config import SyncSettings, get_settings
from .events import SyncEventBus
from .matching import match_products, normalize_sku
from .models import (
    FeedRecord,
    ListingRecord,
    MatchResult,
    Platform,
    StoreConfig,
    SyncOutcome,
    SyncStatus,
)
from .orchestrator import SyncOrchestrator
from .scheduler import ActiveRunGuard, SchedulerService

__all__ = [
    "__version__",
    # Clients
    "PlatformClient",
    "PlatformRegistry",
    "ShopifyClient",
    "SourceFeedClient",
    "WooCommerceClient",
    "default_registry",
    # Config
    "SyncSettings",
    "get_settings",
    # Engine
    "SyncEventBus",
    "SyncOrchestrator",
    "SchedulerService",
    "ActiveRunGuard",
    "match_products",
    "normalize_sku",
    # Models
    "FeedRecord",
    "ListingRecord",
    "MatchResult",
    "Platform",
    "StoreConfig",
    "SyncOutcome",
    "SyncStatus",
]
