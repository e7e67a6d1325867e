import asyncio
from datetime import timedelta

import pytest

from draft_lifecycle.core.errors import FatalQueryError
from draft_lifecycle.domains.cleanup import CleanupScheduler, CleanupTrigger, CleanupWorker

from tests.test_cleanup_worker import BrokenQueryStore


@pytest.fixture
def idle_worker(clock, policy):
    # Хранилище не трогается, пока нет прогона
    return CleanupWorker(None, clock, policy)


class TestSchedulerConfig:
    def test_cadence_must_be_positive(self, idle_worker):
        with pytest.raises(ValueError, match="cadence"):
            CleanupScheduler(idle_worker, timedelta(0))

    def test_initial_status(self, idle_worker):
        scheduler = CleanupScheduler(idle_worker, timedelta(days=1))

        status = scheduler.status()

        assert status["status"] == "stopped"
        assert status["worker_state"] == "idle"
        assert status["cadence_seconds"] == 86400
        assert status["last_run"] is None
        assert status["next_run"] is None


class TestSchedulerRuns:
    @pytest.mark.asyncio
    async def test_run_now_records_summary(self, worker, service, clock):
        await service.create("inspector-1")
        clock.advance(days=31)
        scheduler = CleanupScheduler(worker, timedelta(days=1))

        summary = await scheduler.run_now()

        assert summary.trigger is CleanupTrigger.MANUAL
        assert summary.expired_count == 1
        status = scheduler.status()
        assert status["last_run"] == clock.now().isoformat()
        assert status["last_summary"]["expired_count"] == 1
        assert status["last_error"] is None

    @pytest.mark.asyncio
    async def test_run_now_records_failure(self, store, clock, policy):
        worker = CleanupWorker(BrokenQueryStore(store.session_factory), clock, policy)
        scheduler = CleanupScheduler(worker, timedelta(days=1))

        with pytest.raises(FatalQueryError):
            await scheduler.run_now()

        assert "database is down" in scheduler.status()["last_error"]

    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_stops(self, worker, service, clock):
        await service.create("inspector-1")
        clock.advance(days=31)
        scheduler = CleanupScheduler(worker, timedelta(hours=1))

        scheduler.start()
        with pytest.raises(RuntimeError):
            scheduler.start()

        for _ in range(100):
            if scheduler.last_summary is not None:
                break
            await asyncio.sleep(0.02)

        assert scheduler.last_summary.trigger is CleanupTrigger.SCHEDULED
        assert scheduler.last_summary.expired_count == 1
        status = scheduler.status()
        assert status["status"] == "running"
        assert status["next_run"] == (clock.now() + timedelta(hours=1)).isoformat()

        await scheduler.stop()
        assert scheduler.status()["status"] == "stopped"

    @pytest.mark.asyncio
    async def test_loop_survives_failed_run(self, store, clock, policy):
        worker = CleanupWorker(BrokenQueryStore(store.session_factory), clock, policy)
        scheduler = CleanupScheduler(worker, timedelta(seconds=1))

        scheduler.start()
        for _ in range(100):
            if scheduler.last_error is not None:
                break
            await asyncio.sleep(0.02)

        assert scheduler.is_started
        assert scheduler.last_error is not None
        await scheduler.stop()
