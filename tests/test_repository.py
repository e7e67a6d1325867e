import uuid
from dataclasses import replace
from datetime import timedelta, timezone

import pytest

from draft_lifecycle.core.errors import BatchWriteError, ConcurrentModification, NotFound
from draft_lifecycle.domains.drafts import BatchWrite, DraftQuery, DraftRecord, SortField, Stage

from tests.conftest import T0

WINDOW = timedelta(days=30)


def new_record(owner_id: str = "inspector-1", at=T0, **changes) -> DraftRecord:
    return replace(DraftRecord.create_draft(owner_id, at, WINDOW, {"k": "v"}), **changes)


class TestDraftRepository:
    @pytest.mark.asyncio
    async def test_round_trip_keeps_utc(self, store):
        record = new_record(stage=Stage.STAGE2, stage1_completed_at=T0)
        await store.create(record)

        loaded = await store.get(record.id)

        assert loaded == record
        assert loaded.created_at.tzinfo == timezone.utc
        assert loaded.stage is Stage.STAGE2

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, store):
        record = await store.create(new_record())

        saved = await store.update(replace(record, payload={"k": "w"}), expected_version=1)

        assert saved.version == 2
        assert (await store.get(record.id)).payload == {"k": "w"}

    @pytest.mark.asyncio
    async def test_update_with_stale_version(self, store):
        record = await store.create(new_record())
        await store.update(record, expected_version=1)

        with pytest.raises(ConcurrentModification):
            await store.update(record, expected_version=1)

    @pytest.mark.asyncio
    async def test_update_missing_record(self, store):
        with pytest.raises(NotFound):
            await store.update(new_record(), expected_version=1)

    @pytest.mark.asyncio
    async def test_query_filters_and_ordering(self, store):
        first = await store.create(new_record(at=T0))
        second = await store.create(new_record(at=T0 + timedelta(hours=1)))
        await store.create(new_record(owner_id="inspector-2", at=T0 + timedelta(hours=2)))
        deleted = await store.create(new_record(at=T0).mark_deleted(T0 + timedelta(hours=3)))

        newest_first = await store.query(
            DraftQuery(owner_id="inspector-1", is_deleted=False, descending=True)
        )
        assert [r.id for r in newest_first] == [second.id, first.id]

        edited_by_t0 = await store.query(DraftQuery(is_deleted=False, last_edited_before=T0))
        assert [r.id for r in edited_by_t0] == [first.id]

        trash = await store.query(
            DraftQuery(is_deleted=True, deleted_before=T0 + timedelta(hours=3), order_by=SortField.DELETED_AT)
        )
        assert [r.id for r in trash] == [deleted.id]

        assert await store.query(DraftQuery(is_deleted=True, deleted_after=T0 + timedelta(hours=3))) == []

        limited = await store.query(DraftQuery(owner_id="inspector-1", is_deleted=False, limit=1))
        assert [r.id for r in limited] == [first.id]

        excluded = await store.query(
            DraftQuery(owner_id="inspector-1", is_deleted=False, exclude_ids=frozenset({first.id}))
        )
        assert [r.id for r in excluded] == [second.id]

    @pytest.mark.asyncio
    async def test_count(self, store):
        for _ in range(3):
            await store.create(new_record())
        await store.create(new_record(owner_id="inspector-2"))

        assert await store.count(DraftQuery(owner_id="inspector-1", is_deleted=False)) == 3
        assert await store.count(DraftQuery()) == 4


class TestApplyBatch:
    @pytest.mark.asyncio
    async def test_batch_is_applied(self, store):
        keep = await store.create(new_record())
        drop = await store.create(new_record())

        await store.apply_batch([
            BatchWrite.update(keep.mark_deleted(T0), expected_version=1),
            BatchWrite.delete(drop),
        ])

        assert (await store.get(keep.id)).is_deleted is True
        assert (await store.get(keep.id)).version == 2
        assert await store.get(drop.id) is None

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, store):
        first = await store.create(new_record())
        second = await store.create(new_record())
        await store.update(second, expected_version=1)

        with pytest.raises(BatchWriteError):
            await store.apply_batch([
                BatchWrite.update(first.mark_deleted(T0), expected_version=1),
                BatchWrite.delete(second),
            ])

        assert (await store.get(first.id)).is_deleted is False
        assert await store.get(second.id) is not None

    @pytest.mark.asyncio
    async def test_empty_batch(self, store):
        await store.apply_batch([])


class TestLeases:
    @pytest.mark.asyncio
    async def test_lease_lifecycle(self, store):
        ttl = timedelta(minutes=15)

        assert await store.try_acquire_lease("cleanup", "a", T0, ttl)
        assert await store.try_acquire_lease("cleanup", "a", T0 + timedelta(minutes=1), ttl)
        assert not await store.try_acquire_lease("cleanup", "b", T0 + timedelta(minutes=5), ttl)

        # Чужая аренда не освобождается
        await store.release_lease("cleanup", "b")
        assert not await store.try_acquire_lease("cleanup", "b", T0 + timedelta(minutes=5), ttl)

        await store.release_lease("cleanup", "a")
        assert await store.try_acquire_lease("cleanup", "b", T0 + timedelta(minutes=5), ttl)

    @pytest.mark.asyncio
    async def test_expired_lease_is_taken_over(self, store):
        ttl = timedelta(minutes=15)
        await store.try_acquire_lease("cleanup", "a", T0, ttl)

        assert await store.try_acquire_lease("cleanup", "b", T0 + ttl, ttl)
