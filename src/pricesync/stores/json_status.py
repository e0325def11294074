"""
File-backed status store.

Keeps the in-memory store's semantics and writes a JSON snapshot after every
change, so outcomes and per-product statuses survive process restarts:

    {
      "in_progress": {"<store_id>": SyncOutcome, ...},
      "history": {"<store_id>": [SyncOutcome, ...]},
      "products": [ProductStatusEntry, ...]
    }

Snapshots are written to a sibling temp file and moved into place, so a
crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pydantic
from pydantic import BaseModel, Field

from ..errors import ConfigurationError
from ..models import ProductStatusEntry, SyncOutcome
from .memory import InMemoryStatusStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 100


class StatusSnapshot(BaseModel):
    """On-disk layout of the status file."""

    in_progress: Dict[str, SyncOutcome] = Field(default_factory=dict)
    history: Dict[str, List[SyncOutcome]] = Field(default_factory=dict)
    products: List[ProductStatusEntry] = Field(default_factory=list)


def load_snapshot(path: Path) -> StatusSnapshot:
    """Read a status file; a missing file is an empty snapshot."""
    if not path.exists():
        return StatusSnapshot()
    try:
        return StatusSnapshot.model_validate_json(path.read_bytes())
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid status file {path}: {e}") from e


def write_snapshot(path: Path, snapshot: StatusSnapshot) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
    os.replace(tmp, path)


class JsonFileStatusStore(InMemoryStatusStore):
    """Status store persisted to a JSON file.

    Args:
        path: Snapshot file; created on the first write
        max_history: Finalized outcomes kept per store, oldest dropped first
    """

    def __init__(self, path: str | Path, max_history: int = DEFAULT_MAX_HISTORY):
        super().__init__()
        self.path = Path(path)
        self.max_history = max_history
        self._write_lock = asyncio.Lock()

        snapshot = load_snapshot(self.path)
        self._in_progress.update(snapshot.in_progress)
        self._history.update(snapshot.history)
        for entry in snapshot.products:
            self._products[(entry.store_id, entry.platform_product_id)] = entry
        logger.info(
            f"Loaded status file {self.path}: {sum(len(h) for h in self._history.values())} outcomes, "
            f"{len(self._products)} product statuses"
        )

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            in_progress=dict(self._in_progress),
            history={store_id: list(h) for store_id, h in self._history.items()},
            products=list(self._products.values()),
        )

    async def _flush(self) -> None:
        # Snapshot under the write lock so the last write always holds the latest state.
        async with self._write_lock:
            await asyncio.to_thread(write_snapshot, self.path, self.snapshot())

    async def start_run(self, store_id: str, started_at: datetime) -> None:
        await super().start_run(store_id, started_at)
        await self._flush()

    async def update_progress(
        self,
        store_id: str,
        repriced: int,
        pending: int,
        unlisted: int,
        error: Optional[str] = None,
    ) -> None:
        await super().update_progress(store_id, repriced, pending, unlisted, error)
        await self._flush()

    async def save_outcome(self, outcome: SyncOutcome) -> None:
        await super().save_outcome(outcome)
        history = self._history.get(outcome.store_id, [])
        if len(history) > self.max_history:
            del history[: len(history) - self.max_history]
        await self._flush()

    async def upsert_product_status(self, entry: ProductStatusEntry) -> None:
        await super().upsert_product_status(entry)
        await self._flush()

    async def clear_old_product_status(
        self, store_id: str, older_than_days: int = 30
    ) -> int:
        removed = await super().clear_old_product_status(store_id, older_than_days)
        if removed:
            await self._flush()
        return removed
