"""
Sync Orchestrator.

Runs the Fetch -> Match -> Apply -> Record flow for one store:

1. Fetch feed records from the pricing feed
2. Fetch listings from the store's platform
3. Match records to listings by SKU
4. Push price corrections, one item at a time
5. Persist per-product status, progress and the final outcome

A failing item never stops the run. A failure before matching completes
aborts the run with a single `ALL` error and status `failed`.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .clients.base import PlatformClient
from .clients.feed import SourceFeedClient
from .clients.registry import PlatformRegistry, default_registry
from .errors import ConfigurationError, ErrorKind, error_kind
from .events import SyncEventBus
from .matching import match_products
from .models import (
    AuditEntry,
    FeedRecord,
    MatchedPair,
    MatchResult,
    Platform,
    ProductStatusEntry,
    ProductSyncStatus,
    RunState,
    StoreConfig,
    SyncItemError,
    SyncOutcome,
    parse_credentials,
    utcnow,
)
from .stores.base import AuditSink, ConfigStore, StatusStore

logger = logging.getLogger(__name__)

DEFAULT_PRICE_EPSILON = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def unlisted_product_key(record: FeedRecord) -> str:
    """Status key for a feed record that has no platform listing."""
    return f"feed:{record.id}"


class SyncRun:
    """State of a single run for a single store."""

    def __init__(
        self,
        orchestrator: "SyncOrchestrator",
        store: StoreConfig,
        credentials: Optional[Dict[str, Any]] = None,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.credentials = credentials
        self.state = RunState.IDLE
        self.outcome = SyncOutcome(store_id=store.store_id)
        self.client: Optional[PlatformClient] = None

    @property
    def store_id(self) -> str:
        return self.store.store_id

    def _transition(self, state: RunState) -> None:
        logger.debug(f"Store {self.store_id}: {self.state.value} -> {state.value}")
        self.state = state

    def _emit(self, type: str, message: str, data: Optional[dict] = None) -> None:
        self.orchestrator.event_bus.emit(self.store_id, type, message, data)

    def _counts(self) -> dict:
        return {
            "repriced": self.outcome.repriced_count,
            "pending": self.outcome.pending_count,
            "unlisted": self.outcome.unlisted_count,
        }

    async def _progress(self, error: Optional[str] = None) -> None:
        await self.orchestrator.status_store.update_progress(
            self.store_id,
            self.outcome.repriced_count,
            self.outcome.pending_count,
            self.outcome.unlisted_count,
            error,
        )

    async def execute(self) -> SyncOutcome:
        status_store = self.orchestrator.status_store
        logger.info(f"Starting sync for store {self.store_id} ({self.store.store_name})")

        self._transition(RunState.STARTED)
        await status_store.start_run(self.store_id, self.outcome.timestamp)
        self._emit("started", f"Sync started for {self.store.store_name or self.store_id}")

        aborted = False
        try:
            match = await self._fetch_and_match()
            self._transition(RunState.APPLYING)
            await self._apply(match)
        except Exception as e:
            aborted = True
            await self._abort(e)
        finally:
            if self.client is not None:
                await self.client.close()

        return await self._finalize(aborted)

    async def _fetch_and_match(self) -> MatchResult:
        orchestrator = self.orchestrator

        self._transition(RunState.FETCHING_SOURCE)
        feed_records = await orchestrator.feed_client.fetch_all_records()
        self._emit(
            "progress",
            f"Fetched {len(feed_records)} products from pricing feed",
            {"feed_records": len(feed_records)},
        )

        self._transition(RunState.FETCHING_PLATFORM)
        self.client = orchestrator.create_client(self.store.platform)
        raw_credentials = self.credentials
        if raw_credentials is None:
            raw_credentials = await orchestrator.config_store.get_decrypted_credentials(
                self.store
            )
        await self.client.authenticate(
            parse_credentials(self.store.platform, raw_credentials)
        )
        listings = await self.client.get_all_products()
        self._emit(
            "progress",
            f"Fetched {len(listings)} listings from {self.client.name}",
            {"listings": len(listings)},
        )

        self._transition(RunState.MATCHING)
        match = match_products(feed_records, listings)
        self._emit(
            "matched",
            f"Matched {len(match.matched)} products, {len(match.unlisted)} unlisted",
            {"matched": len(match.matched), "unlisted": len(match.unlisted)},
        )
        return match

    async def _apply(self, match: MatchResult) -> None:
        epsilon = self.orchestrator.price_epsilon
        for pair in match.matched:
            current = _to_decimal(pair.listing.price)
            target = pair.feed_record.price
            if abs(current - target) > epsilon:
                await self._reprice(pair, current, target)

        for record in match.unlisted:
            await self._record_unlisted(record)

    async def _reprice(self, pair: MatchedPair, current: Decimal, target: Decimal) -> None:
        status_store = self.orchestrator.status_store
        listing, record = pair.listing, pair.feed_record
        product_id = str(listing.id)

        try:
            await self.client.update_price(listing, target)
        except Exception as e:
            message = str(e) or type(e).__name__
            self.outcome.pending_count += 1
            self.outcome.errors.append(
                SyncItemError(item_id=product_id, message=message, kind=error_kind(e))
            )
            logger.error(f"Failed to update product {product_id} for store {self.store_id}: {message}")
            await self._progress()
            await status_store.upsert_product_status(
                ProductStatusEntry(
                    store_id=self.store_id,
                    platform_product_id=product_id,
                    feed_record_id=record.id,
                    sku=record.sku,
                    status=ProductSyncStatus.PENDING,
                    current_price=current,
                    target_price=target,
                    error_message=message,
                )
            )
            self._emit(
                "item_failed",
                f"Failed to update {record.sku or product_id}: {message}",
                {"product_id": product_id, **self._counts()},
            )
            return

        now = utcnow()
        self.outcome.repriced_count += 1
        await self._progress()
        await status_store.upsert_product_status(
            ProductStatusEntry(
                store_id=self.store_id,
                platform_product_id=product_id,
                feed_record_id=record.id,
                sku=record.sku,
                status=ProductSyncStatus.REPRICED,
                last_attempt=now,
                last_success=now,
                current_price=current,
                target_price=target,
            )
        )
        await self._audit(
            AuditEntry(
                store_id=self.store_id,
                product_id=product_id,
                action="PRICE_UPDATE",
                old_value=str(current),
                new_value=str(target),
                details=f"Updated from {current} to {target} based on feed record {record.id}",
            )
        )
        logger.info(f"Repriced product {product_id} for store {self.store_id}: {current} -> {target}")
        self._emit(
            "item_repriced",
            f"Repriced {record.sku or product_id}: {current} -> {target}",
            {"product_id": product_id, "old_price": str(current), "new_price": str(target), **self._counts()},
        )

    async def _record_unlisted(self, record: FeedRecord) -> None:
        self.outcome.unlisted_count += 1
        await self.orchestrator.status_store.upsert_product_status(
            ProductStatusEntry(
                store_id=self.store_id,
                platform_product_id=unlisted_product_key(record),
                feed_record_id=record.id,
                sku=record.sku,
                status=ProductSyncStatus.UNLISTED,
                current_price=Decimal("0"),
                target_price=record.price,
            )
        )
        await self._progress()

    async def _audit(self, entry: AuditEntry) -> None:
        try:
            await self.orchestrator.audit_sink.log(entry)
        except Exception as e:
            logger.warning(f"Audit log failed for store {entry.store_id}: {e}")

    async def _abort(self, error: Exception) -> None:
        message = str(error) or type(error).__name__
        logger.error(f"Sync failed for store {self.store_id} during {self.state.value}: {message}")
        self.outcome.errors.append(
            SyncItemError(
                item_id="ALL",
                message=message,
                kind=error_kind(error, default=ErrorKind.INTERNAL),
            )
        )
        try:
            await self._progress(error=message)
        except Exception as e:
            logger.warning(f"Could not record failure progress for store {self.store_id}: {e}")

    async def _finalize(self, aborted: bool) -> SyncOutcome:
        self.outcome.finalize(aborted=aborted)
        await self.orchestrator.status_store.save_outcome(self.outcome)
        self._transition(RunState.FINALIZED)

        summary = (
            f"repriced={self.outcome.repriced_count} pending={self.outcome.pending_count} "
            f"unlisted={self.outcome.unlisted_count}"
        )
        logger.info(f"Sync complete for store {self.store_id}: status={self.outcome.status.value} {summary}")
        self._emit(
            "failed" if aborted else "completed",
            f"Sync {self.outcome.status.value}: {summary}",
            {"status": self.outcome.status.value, **self._counts()},
        )
        return self.outcome


class SyncOrchestrator:
    """
    Coordinates feed client, platform clients, matcher and collaborators.

    One orchestrator serves every store; each call to `sync_store` gets its
    own `SyncRun`, so runs for different stores can proceed concurrently.
    """

    def __init__(
        self,
        feed_client: SourceFeedClient,
        config_store: ConfigStore,
        status_store: StatusStore,
        audit_sink: AuditSink,
        event_bus: Optional[SyncEventBus] = None,
        platform_registry: Optional[PlatformRegistry] = None,
        client_options: Optional[Dict[Platform, Dict[str, Any]]] = None,
        price_epsilon: Decimal = DEFAULT_PRICE_EPSILON,
    ):
        self.feed_client = feed_client
        self.config_store = config_store
        self.status_store = status_store
        self.audit_sink = audit_sink
        self.event_bus = event_bus or SyncEventBus()
        self.platform_registry = platform_registry or default_registry()
        self.client_options = client_options or {}
        self.price_epsilon = Decimal(str(price_epsilon))

    def create_client(self, platform: Any) -> PlatformClient:
        """Platform client for `platform`; ConfigurationError when unsupported."""
        options = self.client_options.get(platform, {})
        return self.platform_registry.create(platform, **options)

    async def sync_store(
        self,
        store: StoreConfig,
        credentials: Optional[Dict[str, Any]] = None,
    ) -> SyncOutcome:
        """Run one sync for `store`.

        Args:
            store: Store configuration
            credentials: Decrypted credentials; fetched from the config store
                when omitted

        Returns:
            The finalized outcome (also persisted via the status store)
        """
        return await SyncRun(self, store, credentials).execute()

    async def sync_store_by_id(self, store_id: str) -> SyncOutcome:
        store = await self.config_store.get_store_config(store_id)
        if store is None:
            raise ConfigurationError(f"Store not found: {store_id}")
        return await self.sync_store(store)

    async def close(self) -> None:
        await self.feed_client.close()


__all__ = ["SyncOrchestrator", "SyncRun", "unlisted_product_key"]
