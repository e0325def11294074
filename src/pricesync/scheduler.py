"""
Scheduler for store sync runs.

Uses APScheduler to periodically:
1. List store configurations
2. Decide which enabled stores are due (last sync + interval)
3. Launch a sync run per due store as an independent task

A store never has more than one run in flight; the tick never waits for
runs to finish.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .models import StoreConfig, SyncOutcome, utcnow
from .orchestrator import SyncOrchestrator
from .stores.base import ConfigStore, StatusStore

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
TICK_JOB_ID = "pricesync_tick"


class ActiveRunGuard:
    """Set of store ids with a run in flight."""

    def __init__(self):
        self._active: set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, store_id: str) -> bool:
        """Mark `store_id` active; False if it already was."""
        with self._lock:
            if store_id in self._active:
                return False
            self._active.add(store_id)
            return True

    def release(self, store_id: str) -> None:
        with self._lock:
            self._active.discard(store_id)

    def is_active(self, store_id: str) -> bool:
        with self._lock:
            return store_id in self._active

    @property
    def active(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._active)


def next_due(store: StoreConfig, latest: Optional[SyncOutcome]) -> datetime:
    """When `store` should next run, given its latest outcome."""
    last_sync = latest.timestamp if latest is not None else EPOCH
    if last_sync.tzinfo is None:
        last_sync = last_sync.replace(tzinfo=timezone.utc)
    return last_sync + timedelta(minutes=store.sync_interval_minutes)


class SchedulerService:
    """Ticks on a fixed interval and launches due store runs."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        config_store: ConfigStore,
        status_store: StatusStore,
        tick_seconds: int = 60,
        guard: Optional[ActiveRunGuard] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orchestrator = orchestrator
        self.config_store = config_store
        self.status_store = status_store
        self.tick_seconds = tick_seconds
        self.guard = guard or ActiveRunGuard()
        self.clock = clock
        self.scheduler = AsyncIOScheduler()
        self._tasks: set[asyncio.Task] = set()

    def start(self):
        """Start ticking; the first tick fires immediately."""
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id=TICK_JOB_ID,
            name="Price sync tick",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Price sync scheduler started. Ticking every {self.tick_seconds}s")

    async def stop(self, wait: bool = False):
        """Stop ticking. With `wait`, let in-flight runs finish first."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # APScheduler 3.11 queues shutdown onto the loop; let it run.
            await asyncio.sleep(0)
        if wait:
            await self.wait_for_runs()
        logger.info("Price sync scheduler stopped")

    async def wait_for_runs(self) -> None:
        """Wait until every launched run has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def is_running(self, store_id: str) -> bool:
        return self.guard.is_active(store_id)

    async def tick(self) -> list[str]:
        """Launch runs for every due store.

        Returns:
            Ids of the stores a run was launched for
        """
        try:
            stores = await self.config_store.get_all_store_configs()
        except Exception as e:
            logger.exception(f"Failed to load store configurations: {e}")
            return []

        launched = []
        now = self.clock()
        for store in stores:
            try:
                if not store.enabled:
                    continue
                if self.guard.is_active(store.store_id):
                    logger.debug(f"Store {store.store_id} already syncing, skipping")
                    continue

                latest = await self.status_store.get_latest_outcome(store.store_id)
                due = next_due(store, latest)
                if due > now:
                    continue

                if self._launch(store) is not None:
                    launched.append(store.store_id)
            except Exception as e:
                logger.exception(f"Scheduling failed for store {store.store_id}: {e}")

        if launched:
            logger.info(f"Launched sync for {len(launched)} store(s): {', '.join(launched)}")
        return launched

    async def trigger(self, store_id: str) -> bool:
        """Start a manual run for one store.

        Returns:
            False when the store is unknown or already running
        """
        store = await self.config_store.get_store_config(store_id)
        if store is None:
            logger.warning(f"Cannot trigger sync: store {store_id} not found")
            return False
        if self._launch(store) is None:
            logger.info(f"Sync already running for store {store_id}")
            return False
        return True

    def _launch(self, store: StoreConfig) -> Optional[asyncio.Task]:
        if not self.guard.try_acquire(store.store_id):
            return None
        task = asyncio.create_task(self._run(store), name=f"sync-{store.store_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, store: StoreConfig) -> None:
        try:
            outcome = await self.orchestrator.sync_store(store)
            logger.info(f"Store {store.store_id} sync finished: {outcome.status.value}")
        except Exception as e:
            logger.exception(f"Sync run crashed for store {store.store_id}: {e}")
        finally:
            self.guard.release(store.store_id)


__all__ = ["ActiveRunGuard", "SchedulerService", "next_due"]
