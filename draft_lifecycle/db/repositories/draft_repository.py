import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draft_lifecycle.core.errors import (
    BatchWriteError, ConcurrentModification, NotFound, StoreUnavailable
)
from draft_lifecycle.db.models.draft import Draft as DraftModel
from draft_lifecycle.db.repositories.lease_repository import LeaseRepository
from draft_lifecycle.domains.drafts.entities import DraftRecord
from draft_lifecycle.domains.drafts.store import (
    BatchWrite, DraftQuery, DraftStore, SortField, WriteKind
)

logger = logging.getLogger(__name__)

# Поля, которые меняются после создания; id, owner_id и created_at неизменяемы
_MUTABLE_FIELDS = (
    "stage",
    "stage1_completed_at",
    "stage2_completed_at",
    "last_edited_at",
    "is_deleted",
    "deleted_at",
    "expiration_reason",
    "expires_at",
    "payload",
)


class DraftRepository(DraftStore):
    """Репозиторий черновиков поверх асинхронного SQLAlchemy"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.leases = LeaseRepository(session_factory)

    async def create(self, record: DraftRecord) -> DraftRecord:
        """Создание нового черновика"""
        db_draft = DraftModel(
            id=record.id,
            owner_id=record.owner_id,
            created_at=record.created_at,
            version=record.version,
            **self._mutable_values(record)
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(db_draft)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to create draft {record.id}: {exc}") from exc
        return record

    async def get(self, record_id: uuid.UUID) -> Optional[DraftRecord]:
        """Получение черновика по id"""
        try:
            async with self.session_factory() as session:
                db_draft = await session.get(DraftModel, record_id)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to read draft {record_id}: {exc}") from exc
        return self._to_domain(db_draft) if db_draft else None

    async def update(self, record: DraftRecord, expected_version: int) -> DraftRecord:
        """Условное обновление по версии"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(self._conditional_update(record, expected_version))
                    if result.rowcount == 1:
                        return replace(record, version=expected_version + 1)
                    exists = await session.scalar(
                        select(func.count()).select_from(DraftModel).where(DraftModel.id == record.id)
                    )
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to update draft {record.id}: {exc}") from exc

        if exists:
            logger.info(f"Version conflict on draft {record.id} (expected {expected_version})")
            raise ConcurrentModification(
                f"Draft {record.id} was modified concurrently; reload and try again"
            )
        raise NotFound(f"Draft {record.id} not found")

    async def query(self, query: DraftQuery) -> List[DraftRecord]:
        """Выборка черновиков по фильтру"""
        order_column = (
            DraftModel.deleted_at if query.order_by is SortField.DELETED_AT
            else DraftModel.last_edited_at
        )
        stmt = self._apply_filters(select(DraftModel), query).order_by(
            order_column.desc() if query.descending else order_column.asc(),
            DraftModel.id,
        )
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                db_drafts = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Draft query failed: {exc}") from exc
        return [self._to_domain(db_draft) for db_draft in db_drafts]

    async def count(self, query: DraftQuery) -> int:
        """Подсчёт черновиков по фильтру"""
        stmt = self._apply_filters(select(func.count()).select_from(DraftModel), query)
        try:
            async with self.session_factory() as session:
                return (await session.scalar(stmt)) or 0
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Draft count failed: {exc}") from exc

    async def apply_batch(self, writes: Sequence[BatchWrite]) -> None:
        """Атомарная пакетная запись: одна транзакция на весь пакет"""
        if not writes:
            return
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for write in writes:
                        if write.kind is WriteKind.UPDATE:
                            stmt = self._conditional_update(write.record, write.expected_version)
                        else:
                            stmt = (
                                delete(DraftModel)
                                .where(
                                    DraftModel.id == write.record.id,
                                    DraftModel.version == write.expected_version,
                                )
                                .execution_options(synchronize_session=False)
                            )
                        result = await session.execute(stmt)
                        if result.rowcount != 1:
                            raise BatchWriteError(
                                f"Conditional {write.kind.value} failed for draft {write.record.id}"
                            )
        except SQLAlchemyError as exc:
            raise BatchWriteError(f"Batch of {len(writes)} writes failed: {exc}") from exc

    async def try_acquire_lease(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        return await self.leases.try_acquire(name, holder, now, ttl)

    async def release_lease(self, name: str, holder: str) -> None:
        await self.leases.release(name, holder)

    def _conditional_update(self, record: DraftRecord, expected_version: int):
        return (
            update(DraftModel)
            .where(DraftModel.id == record.id, DraftModel.version == expected_version)
            .values(version=expected_version + 1, **self._mutable_values(record))
            .execution_options(synchronize_session=False)
        )

    def _apply_filters(self, stmt, query: DraftQuery):
        if query.owner_id is not None:
            stmt = stmt.where(DraftModel.owner_id == query.owner_id)
        if query.is_deleted is not None:
            stmt = stmt.where(DraftModel.is_deleted == query.is_deleted)
        if query.last_edited_before is not None:
            stmt = stmt.where(DraftModel.last_edited_at <= query.last_edited_before)
        if query.deleted_before is not None:
            stmt = stmt.where(DraftModel.deleted_at <= query.deleted_before)
        if query.deleted_after is not None:
            stmt = stmt.where(DraftModel.deleted_at > query.deleted_after)
        if query.exclude_ids:
            stmt = stmt.where(DraftModel.id.not_in(list(query.exclude_ids)))
        return stmt

    def _mutable_values(self, record: DraftRecord) -> Dict[str, Any]:
        return {name: getattr(record, name) for name in _MUTABLE_FIELDS}

    def _to_domain(self, db_draft: DraftModel) -> DraftRecord:
        """Преобразование модели БД в доменную сущность"""
        return DraftRecord(
            id=db_draft.id,
            owner_id=db_draft.owner_id,
            stage=db_draft.stage,
            created_at=db_draft.created_at,
            last_edited_at=db_draft.last_edited_at,
            stage1_completed_at=db_draft.stage1_completed_at,
            stage2_completed_at=db_draft.stage2_completed_at,
            is_deleted=db_draft.is_deleted,
            deleted_at=db_draft.deleted_at,
            expiration_reason=db_draft.expiration_reason,
            expires_at=db_draft.expires_at,
            payload=dict(db_draft.payload or {}),
            version=db_draft.version,
        )
