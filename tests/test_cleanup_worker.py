import asyncio
from datetime import timedelta

import pytest

from draft_lifecycle.core.errors import (
    AlreadyRunning, BatchWriteError, FatalQueryError, NotFound, StoreUnavailable
)
from draft_lifecycle.db.repositories import DraftRepository
from draft_lifecycle.domains.cleanup import CleanupConfig, CleanupTrigger, CleanupWorker, WorkerState
from draft_lifecycle.domains.drafts import (
    AUTO_EXPIRED_REASON, MANUAL_CLEANUP_REASON, BatchWrite, DraftQuery, LifecycleEventType
)

from tests.conftest import seed


class FlakyBatchStore(DraftRepository):
    """Хранилище, у которого первые ``failures`` пакетных записей падают"""

    def __init__(self, session_factory, failures: int):
        super().__init__(session_factory)
        self.failures = failures
        self.batch_calls = 0

    async def apply_batch(self, writes):
        self.batch_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise BatchWriteError("simulated batch failure")
        await super().apply_batch(writes)


class BrokenQueryStore(DraftRepository):
    async def query(self, query: DraftQuery):
        raise StoreUnavailable("database is down")


class SlowQueryStore(DraftRepository):
    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.release = asyncio.Event()

    async def query(self, query: DraftQuery):
        await self.release.wait()
        return await super().query(query)


class EditDuringBatchStore(DraftRepository):
    """Хранилище, в котором черновик меняется между выборкой и первой пакетной записью"""

    def __init__(self, session_factory, edit):
        super().__init__(session_factory)
        self.edit = edit
        self.batch_calls = 0

    async def apply_batch(self, writes):
        self.batch_calls += 1
        if self.batch_calls == 1:
            await self.edit()
        await super().apply_batch(writes)


class TestCleanupRun:
    @pytest.mark.asyncio
    async def test_expires_stale_drafts(self, service, worker, clock):
        stale = await seed(service, clock, 4)
        clock.advance(days=20)
        fresh = await service.create("inspector-1")
        clock.advance(days=10, seconds=10)

        summary = await worker.run()

        assert summary.expired_count == 4
        assert summary.hard_deleted_count == 0
        assert summary.error_count == 0
        assert summary.timestamp == clock.now()
        for record in stale:
            stored = await service.get(record.id)
            assert stored.is_deleted is True
            assert stored.deleted_at == clock.now()
            assert stored.expiration_reason == AUTO_EXPIRED_REASON
        assert (await service.get(fresh.id)).is_deleted is False

    @pytest.mark.asyncio
    async def test_second_run_finds_nothing(self, service, worker, clock):
        await seed(service, clock, 5)
        clock.advance(days=31)

        first = await worker.run()
        second = await worker.run()

        assert first.expired_count == 5
        assert second.expired_count == 0
        assert second.hard_deleted_count == 0
        assert second.error_count == 0

    @pytest.mark.asyncio
    async def test_expiration_chain(self, service, worker, clock):
        record = await service.create("inspector-1")

        clock.advance(days=31)
        summary = await worker.run()
        assert summary.expired_count == 1
        assert (await service.get(record.id)).is_deleted is True

        clock.advance(hours=47)
        summary = await worker.run()
        assert summary.hard_deleted_count == 0
        assert (await service.get(record.id)).is_deleted is True

        clock.advance(hours=2)
        summary = await worker.run()
        assert summary.hard_deleted_count == 1
        with pytest.raises(NotFound):
            await service.get(record.id)

    @pytest.mark.asyncio
    async def test_hard_delete_at_exact_window(self, service, worker, clock):
        record = await service.create("inspector-1")
        await service.soft_delete(record.id)
        clock.advance(hours=48)

        summary = await worker.run()

        assert summary.hard_deleted_count == 1

    @pytest.mark.asyncio
    async def test_user_deleted_drafts_are_purged(self, service, worker, clock):
        kept = await service.create("inspector-1")
        gone = await service.create("inspector-1")
        await service.soft_delete(gone.id)
        clock.advance(hours=50)

        summary = await worker.run()

        assert summary.hard_deleted_count == 1
        assert summary.expired_count == 0
        assert (await service.get(kept.id)).is_deleted is False

    @pytest.mark.asyncio
    async def test_batch_limit_per_run(self, store, service, clock, policy):
        await seed(service, clock, 7)
        clock.advance(days=31)
        worker = CleanupWorker(store, clock, policy, config=CleanupConfig(batch_size=2, max_batches_per_run=2))

        first = await worker.run()
        second = await worker.run()

        assert first.expired_count == 4
        assert second.expired_count == 3

    @pytest.mark.asyncio
    async def test_manual_trigger_tags_reason(self, service, worker, clock):
        record = await service.create("inspector-1")
        clock.advance(days=31)

        summary = await worker.run(CleanupTrigger.MANUAL)

        assert summary.trigger is CleanupTrigger.MANUAL
        assert (await service.get(record.id)).expiration_reason == MANUAL_CLEANUP_REASON

    @pytest.mark.asyncio
    async def test_publishes_events(self, service, worker, clock, recorder):
        await seed(service, clock, 2)
        clock.advance(days=31)

        await worker.run()

        assert recorder.types.count(LifecycleEventType.EXPIRED) == 2
        assert recorder.types[-1] is LifecycleEventType.CLEANUP_COMPLETED
        assert recorder.events[-1].data["expired_count"] == 2


class TestCleanupFailures:
    @pytest.mark.asyncio
    async def test_failed_batch_is_retried_once(self, store, service, clock, policy):
        await seed(service, clock, 2)
        clock.advance(days=31)
        flaky = FlakyBatchStore(store.session_factory, failures=1)
        worker = CleanupWorker(flaky, clock, policy)

        summary = await worker.run()

        assert summary.expired_count == 2
        assert summary.error_count == 0
        assert flaky.batch_calls == 2

    @pytest.mark.asyncio
    async def test_batch_failing_twice_counts_errors(self, store, service, clock, policy):
        records = await seed(service, clock, 2)
        clock.advance(days=31)
        flaky = FlakyBatchStore(store.session_factory, failures=2)
        worker = CleanupWorker(flaky, clock, policy)

        summary = await worker.run()

        assert summary.expired_count == 0
        assert summary.error_count == 2
        for record in records:
            assert (await service.get(record.id)).is_deleted is False

        # Следующий прогон подбирает отложенные записи
        summary = await worker.run()
        assert summary.expired_count == 2

    @pytest.mark.asyncio
    async def test_query_failure_is_fatal(self, store, service, clock, policy, events, recorder):
        record = await service.create("inspector-1")
        clock.advance(days=31)
        worker = CleanupWorker(BrokenQueryStore(store.session_factory), clock, policy, events=events)

        with pytest.raises(FatalQueryError):
            await worker.run()

        assert recorder.types[-1] is LifecycleEventType.CLEANUP_FAILED
        assert worker.state is WorkerState.IDLE
        assert (await service.get(record.id)).is_deleted is False

    @pytest.mark.asyncio
    async def test_edit_during_expiry_batch_spares_the_rest(self, store, service, clock, policy):
        records = await seed(service, clock, 3)
        clock.advance(days=31)
        edited = records[0]
        racing = EditDuringBatchStore(
            store.session_factory,
            lambda: service.update_payload(edited.id, {"edited": True}),
        )
        worker = CleanupWorker(racing, clock, policy)

        summary = await worker.run()

        assert summary.expired_count == 2
        assert summary.error_count == 0
        assert racing.batch_calls == 2
        assert (await service.get(edited.id)).is_deleted is False
        for record in records[1:]:
            assert (await service.get(record.id)).is_deleted is True

    @pytest.mark.asyncio
    async def test_version_bump_during_expiry_batch_is_rebuilt(self, store, service, clock, policy):
        records = await seed(service, clock, 2)
        clock.advance(days=31)
        target = records[0]

        async def bump_version():
            # Запись меняется, но остаётся устаревшей
            current = await store.get(target.id)
            await store.update(current, expected_version=current.version)

        racing = EditDuringBatchStore(store.session_factory, bump_version)
        worker = CleanupWorker(racing, clock, policy)

        summary = await worker.run()

        assert summary.expired_count == 2
        assert summary.error_count == 0
        assert (await service.get(target.id)).is_deleted is True

    @pytest.mark.asyncio
    async def test_restore_during_purge_batch_spares_the_rest(self, store, service, clock, policy):
        records = await seed(service, clock, 3)
        for record in records:
            await service.soft_delete(record.id)
        # Ровно на границе окна запись ещё можно восстановить
        clock.advance(hours=48)
        restored = records[0]
        racing = EditDuringBatchStore(store.session_factory, lambda: service.restore(restored.id))
        worker = CleanupWorker(racing, clock, policy)

        summary = await worker.run()

        assert summary.hard_deleted_count == 2
        assert summary.error_count == 0
        assert racing.batch_calls == 2
        assert (await service.get(restored.id)).is_deleted is False
        for record in records[1:]:
            with pytest.raises(NotFound):
                await service.get(record.id)

    @pytest.mark.asyncio
    async def test_concurrent_edit_is_not_overwritten(self, store, service, clock, policy):
        record = await service.create("inspector-1")
        clock.advance(days=31)
        stale_snapshot = await service.get(record.id)
        await service.update_payload(record.id, {"edited": True})

        write = service.expiration.apply_expiration(stale_snapshot, clock.now())

        with pytest.raises(BatchWriteError):
            await store.apply_batch([BatchWrite.update(write, expected_version=stale_snapshot.version)])
        assert (await service.get(record.id)).is_deleted is False


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_second_run_while_running(self, store, clock, policy):
        slow = SlowQueryStore(store.session_factory)
        worker = CleanupWorker(slow, clock, policy)

        first = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)
        assert worker.is_running

        with pytest.raises(AlreadyRunning):
            await worker.run()

        slow.release.set()
        summary = await first
        assert summary.error_count == 0
        assert worker.state is WorkerState.IDLE

    @pytest.mark.asyncio
    async def test_lease_blocks_other_worker(self, store, clock, policy):
        assert await store.try_acquire_lease("draft-cleanup", "other-host", clock.now(), timedelta(minutes=15))
        worker = CleanupWorker(store, clock, policy)

        with pytest.raises(AlreadyRunning):
            await worker.run()

        clock.advance(minutes=16)
        summary = await worker.run()
        assert summary.error_count == 0

    @pytest.mark.asyncio
    async def test_lease_released_after_run(self, store, clock, policy):
        worker = CleanupWorker(store, clock, policy, holder="worker-a")
        await worker.run()

        assert await store.try_acquire_lease("draft-cleanup", "worker-b", clock.now(), timedelta(minutes=15))
