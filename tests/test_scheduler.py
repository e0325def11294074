"""
Tests for SchedulerService and ActiveRunGuard.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from apscheduler.schedulers.base import STATE_STOPPED

from pricesync.models import StoreConfig, SyncOutcome, SyncStatus
from pricesync.scheduler import (
    EPOCH,
    TICK_JOB_ID,
    ActiveRunGuard,
    SchedulerService,
    next_due,
)
from pricesync.stores import InMemoryConfigStore, InMemoryStatusStore

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeOrchestrator:
    """Records runs; optionally blocks on a gate or raises."""

    def __init__(self, error=None, gate=None):
        self.error = error
        self.gate = gate
        self.calls: list[str] = []

    async def sync_store(self, store):
        self.calls.append(store.store_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return SyncOutcome(store_id=store.store_id).finalize()


def make_service(stores, orchestrator=None, status_store=None):
    return SchedulerService(
        orchestrator or FakeOrchestrator(),
        InMemoryConfigStore(stores),
        status_store or InMemoryStatusStore(),
        tick_seconds=60,
        clock=lambda: NOW,
    )


async def save_outcome_at(status_store, store_id, when):
    await status_store.save_outcome(
        SyncOutcome(store_id=store_id, timestamp=when, status=SyncStatus.SUCCESS)
    )


class TestActiveRunGuard:
    """Test the per-store run token."""

    def test_acquire_is_exclusive(self):
        guard = ActiveRunGuard()

        assert guard.try_acquire("a") is True
        assert guard.try_acquire("a") is False
        assert guard.try_acquire("b") is True
        assert guard.active == frozenset({"a", "b"})

    def test_release_allows_reacquire(self):
        guard = ActiveRunGuard()
        guard.try_acquire("a")

        guard.release("a")

        assert guard.is_active("a") is False
        assert guard.try_acquire("a") is True

    def test_release_unknown_is_noop(self):
        ActiveRunGuard().release("never")


class TestNextDue:
    """Test next_due()."""

    def test_no_history_is_due_at_epoch_plus_interval(self, woo_store):
        assert next_due(woo_store, None) == EPOCH + timedelta(minutes=30)

    def test_interval_after_last_sync(self, woo_store):
        latest = SyncOutcome(store_id="woo-1", timestamp=NOW)

        assert next_due(woo_store, latest) == NOW + timedelta(minutes=30)

    def test_naive_timestamp_is_utc(self, woo_store):
        latest = SyncOutcome(store_id="woo-1", timestamp=NOW.replace(tzinfo=None))

        assert next_due(woo_store, latest) == NOW + timedelta(minutes=30)


class TestTick:
    """Test SchedulerService.tick()."""

    @pytest.mark.asyncio
    async def test_never_synced_store_is_launched(self, woo_store):
        orchestrator = FakeOrchestrator()
        service = make_service([woo_store], orchestrator)

        launched = await service.tick()
        await service.wait_for_runs()

        assert launched == ["woo-1"]
        assert orchestrator.calls == ["woo-1"]
        assert service.is_running("woo-1") is False

    @pytest.mark.asyncio
    async def test_disabled_store_is_skipped(self, woo_store):
        store = woo_store.model_copy(update={"enabled": False})
        service = make_service([store])

        assert await service.tick() == []

    @pytest.mark.asyncio
    async def test_recent_sync_is_not_due(self, woo_store):
        status_store = InMemoryStatusStore()
        await save_outcome_at(status_store, "woo-1", NOW - timedelta(minutes=10))
        service = make_service([woo_store], status_store=status_store)

        assert await service.tick() == []

    @pytest.mark.asyncio
    async def test_elapsed_interval_is_due(self, woo_store):
        status_store = InMemoryStatusStore()
        await save_outcome_at(status_store, "woo-1", NOW - timedelta(minutes=30))
        service = make_service([woo_store], status_store=status_store)

        assert await service.tick() == ["woo-1"]
        await service.wait_for_runs()

    @pytest.mark.asyncio
    async def test_one_run_per_store_at_a_time(self, woo_store):
        gate = asyncio.Event()
        orchestrator = FakeOrchestrator(gate=gate)
        service = make_service([woo_store], orchestrator)

        await service.tick()
        await asyncio.sleep(0)
        assert service.is_running("woo-1") is True
        assert await service.tick() == []

        gate.set()
        await service.wait_for_runs()

        assert orchestrator.calls == ["woo-1"]
        assert service.is_running("woo-1") is False

    @pytest.mark.asyncio
    async def test_failed_run_releases_token(self, woo_store):
        orchestrator = FakeOrchestrator(error=RuntimeError("boom"))
        service = make_service([woo_store], orchestrator)

        await service.tick()
        await service.wait_for_runs()

        assert service.is_running("woo-1") is False
        assert await service.tick() == ["woo-1"]
        await service.wait_for_runs()

    @pytest.mark.asyncio
    async def test_store_failure_does_not_stop_tick(self, woo_store, shopify_store):
        status_store = InMemoryStatusStore()
        original = status_store.get_latest_outcome

        async def flaky_latest(store_id):
            if store_id == "woo-1":
                raise RuntimeError("status store unavailable")
            return await original(store_id)

        status_store.get_latest_outcome = flaky_latest
        service = make_service([woo_store, shopify_store], status_store=status_store)

        assert await service.tick() == ["shop-1"]
        await service.wait_for_runs()

    @pytest.mark.asyncio
    async def test_config_failure_ends_tick(self):
        config_store = InMemoryConfigStore()
        config_store.get_all_store_configs = AsyncMock(side_effect=RuntimeError("db down"))
        orchestrator = FakeOrchestrator()
        service = SchedulerService(orchestrator, config_store, InMemoryStatusStore())

        assert await service.tick() == []
        assert orchestrator.calls == []


class TestTrigger:
    """Test manual runs."""

    @pytest.mark.asyncio
    async def test_unknown_store(self):
        service = make_service([])

        assert await service.trigger("missing") is False

    @pytest.mark.asyncio
    async def test_trigger_ignores_schedule(self, woo_store):
        status_store = InMemoryStatusStore()
        await save_outcome_at(status_store, "woo-1", NOW)
        orchestrator = FakeOrchestrator()
        service = make_service([woo_store], orchestrator, status_store)

        assert await service.trigger("woo-1") is True
        await service.wait_for_runs()

        assert orchestrator.calls == ["woo-1"]

    @pytest.mark.asyncio
    async def test_trigger_while_running(self, woo_store):
        gate = asyncio.Event()
        service = make_service([woo_store], FakeOrchestrator(gate=gate))

        assert await service.trigger("woo-1") is True
        assert await service.trigger("woo-1") is False

        gate.set()
        await service.wait_for_runs()


class TestLifecycle:
    """Test start() and stop()."""

    @pytest.mark.asyncio
    async def test_start_registers_tick_job(self):
        service = make_service([])

        service.start()
        try:
            job = service.scheduler.get_job(TICK_JOB_ID)
            assert job is not None
            assert job.trigger.interval == timedelta(seconds=60)
        finally:
            await service.stop()

        assert service.scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_takes_effect_before_returning(self):
        """The scheduler is fully stopped once stop() returns."""
        service = make_service([])
        service.start()

        await service.stop()

        assert service.scheduler.state == STATE_STOPPED
        assert service.scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_before_start_is_a_noop(self):
        service = make_service([])

        await service.stop()

        assert service.scheduler.state == STATE_STOPPED

    @pytest.mark.asyncio
    async def test_stop_waits_for_runs(self, woo_store):
        gate = asyncio.Event()
        orchestrator = FakeOrchestrator(gate=gate)
        service = make_service([woo_store], orchestrator)
        await service.tick()

        asyncio.get_running_loop().call_later(0.01, gate.set)
        await service.stop(wait=True)

        assert orchestrator.calls == ["woo-1"]
        assert service.is_running("woo-1") is False
