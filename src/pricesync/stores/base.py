"""Interfaces of the collaborators the sync engine depends on.

Storage engines live outside the engine; anything implementing these
contracts can be injected into the orchestrator and scheduler.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..models import (
    AuditEntry,
    ProductStatusEntry,
    ProductSyncStatus,
    StoreConfig,
    SyncOutcome,
)


class ConfigStore(ABC):
    """Store configuration and credential access."""

    @abstractmethod
    async def get_store_config(self, store_id: str) -> Optional[StoreConfig]:
        ...

    @abstractmethod
    async def get_all_store_configs(self) -> list[StoreConfig]:
        ...

    @abstractmethod
    async def get_decrypted_credentials(self, config: StoreConfig) -> dict[str, str]:
        """Plain key-value credentials for `config`."""


class StatusStore(ABC):
    """Run progress, outcomes and per-product status."""

    @abstractmethod
    async def start_run(self, store_id: str, started_at: datetime) -> None:
        ...

    @abstractmethod
    async def update_progress(
        self,
        store_id: str,
        repriced: int,
        pending: int,
        unlisted: int,
        error: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    async def save_outcome(self, outcome: SyncOutcome) -> None:
        ...

    @abstractmethod
    async def get_latest_outcome(self, store_id: str) -> Optional[SyncOutcome]:
        ...

    @abstractmethod
    async def upsert_product_status(self, entry: ProductStatusEntry) -> None:
        ...

    @abstractmethod
    async def get_sync_history(self, store_id: str, limit: int = 10) -> list[SyncOutcome]:
        """Most recent outcomes first."""

    @abstractmethod
    async def get_product_statuses(
        self, store_id: str, status: Optional[ProductSyncStatus] = None
    ) -> list[ProductStatusEntry]:
        ...

    @abstractmethod
    async def get_product_status_counts(self, store_id: str) -> dict[str, int]:
        ...

    @abstractmethod
    async def clear_old_product_status(
        self, store_id: str, older_than_days: int = 30
    ) -> int:
        """Delete entries last attempted before the cutoff; returns the count."""


class AuditSink(ABC):
    """Change history of applied price updates."""

    @abstractmethod
    async def log(self, entry: AuditEntry) -> None:
        ...
