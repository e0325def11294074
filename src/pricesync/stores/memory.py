"""
In-memory collaborator implementations.

Used by the test-suite and as the base of the file-backed status store.
State held here lives only as long as the process.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..models import (
    AuditEntry,
    ProductStatusEntry,
    ProductSyncStatus,
    StoreConfig,
    SyncOutcome,
    SyncStatus,
    utcnow,
)
from .base import AuditSink, ConfigStore, StatusStore

logger = logging.getLogger(__name__)

Decryptor = Callable[[Any], Dict[str, str]]


def _plain_credentials(blob: Any) -> Dict[str, str]:
    return {str(k): str(v) for k, v in dict(blob or {}).items()}


class InMemoryConfigStore(ConfigStore):
    """Config store over a dict of `StoreConfig`s.

    `decryptor` turns a config's credential blob into a plain map; by default
    the blob is expected to already be a mapping.
    """

    def __init__(
        self,
        configs: Iterable[StoreConfig] = (),
        decryptor: Decryptor = _plain_credentials,
    ):
        self._configs: Dict[str, StoreConfig] = {c.store_id: c for c in configs}
        self._decryptor = decryptor

    def add(self, config: StoreConfig) -> None:
        self._configs[config.store_id] = config

    async def get_store_config(self, store_id: str) -> Optional[StoreConfig]:
        return self._configs.get(store_id)

    async def get_all_store_configs(self) -> list[StoreConfig]:
        return list(self._configs.values())

    async def get_decrypted_credentials(self, config: StoreConfig) -> Dict[str, str]:
        return self._decryptor(config.credentials)


class InMemoryStatusStore(StatusStore):
    """Status store keeping outcomes and product statuses in dicts."""

    def __init__(self):
        self._in_progress: Dict[str, SyncOutcome] = {}
        self._history: Dict[str, List[SyncOutcome]] = {}
        self._products: Dict[Tuple[str, str], ProductStatusEntry] = {}
        self._lock = asyncio.Lock()

    async def start_run(self, store_id: str, started_at: datetime) -> None:
        async with self._lock:
            self._in_progress[store_id] = SyncOutcome(
                store_id=store_id, timestamp=started_at, status=SyncStatus.IN_PROGRESS
            )

    async def update_progress(
        self,
        store_id: str,
        repriced: int,
        pending: int,
        unlisted: int,
        error: Optional[str] = None,
    ) -> None:
        async with self._lock:
            current = self._in_progress.get(store_id)
            if current is None:
                current = SyncOutcome(store_id=store_id)
                self._in_progress[store_id] = current
            current.repriced_count = repriced
            current.pending_count = pending
            current.unlisted_count = unlisted
            if error:
                current.error_message = error

    async def get_in_progress(self, store_id: str) -> Optional[SyncOutcome]:
        return self._in_progress.get(store_id)

    async def save_outcome(self, outcome: SyncOutcome) -> None:
        async with self._lock:
            self._history.setdefault(outcome.store_id, []).append(
                outcome.model_copy(deep=True)
            )
            self._in_progress.pop(outcome.store_id, None)

    async def get_latest_outcome(self, store_id: str) -> Optional[SyncOutcome]:
        history = self._history.get(store_id)
        if history:
            return history[-1]
        return self._in_progress.get(store_id)

    async def get_sync_history(self, store_id: str, limit: int = 10) -> list[SyncOutcome]:
        history = self._history.get(store_id, [])
        return list(reversed(history))[:limit]

    async def upsert_product_status(self, entry: ProductStatusEntry) -> None:
        async with self._lock:
            key = (entry.store_id, entry.platform_product_id)
            previous = self._products.get(key)
            if entry.last_success is None and previous is not None:
                entry = entry.model_copy(update={"last_success": previous.last_success})
            self._products[key] = entry

    async def get_product_statuses(
        self, store_id: str, status: Optional[ProductSyncStatus] = None
    ) -> list[ProductStatusEntry]:
        entries = [
            e
            for (sid, _), e in self._products.items()
            if sid == store_id and (status is None or e.status == status)
        ]
        return sorted(entries, key=lambda e: e.last_attempt, reverse=True)

    async def get_product_status_counts(self, store_id: str) -> dict[str, int]:
        counts = {s.value: 0 for s in ProductSyncStatus}
        for (sid, _), entry in self._products.items():
            if sid == store_id:
                counts[entry.status.value] += 1
        return counts

    async def clear_old_product_status(
        self, store_id: str, older_than_days: int = 30
    ) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        async with self._lock:
            stale = [
                key
                for key, entry in self._products.items()
                if key[0] == store_id and entry.last_attempt < cutoff
            ]
            for key in stale:
                del self._products[key]
        return len(stale)


class InMemoryAuditSink(AuditSink):
    def __init__(self):
        self.entries: List[AuditEntry] = []

    async def log(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


class LoggingAuditSink(AuditSink):
    """Writes audit entries to the `pricesync.audit` logger."""

    def __init__(self, logger_name: str = "pricesync.audit"):
        self._logger = logging.getLogger(logger_name)

    async def log(self, entry: AuditEntry) -> None:
        self._logger.info(
            "store=%s product=%s action=%s old=%s new=%s %s",
            entry.store_id,
            entry.product_id,
            entry.action,
            entry.old_value,
            entry.new_value,
            entry.details or "",
        )
