"""Контракт хранилища черновиков.

Домен работает только с этим интерфейсом; реализация на SQLAlchemy
находится в ``draft_lifecycle.db.repositories``. Несущие для корректности
свойства контракта:

* ``update`` пишет условно по ``version``; устаревший снимок даёт
  ``ConcurrentModification``, отсутствующая запись даёт ``NotFound``;
* ``apply_batch``: атомарный пакет условных записей (всё или ничего);
* сбои бэкенда поднимаются как ``StoreUnavailable``.
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence

from draft_lifecycle.domains.drafts.entities import DraftRecord


class SortField(Enum):
    LAST_EDITED_AT = "last_edited_at"
    DELETED_AT = "deleted_at"


@dataclass(frozen=True)
class DraftQuery:
    """Фильтр и сортировка для выборок черновиков.

    ``deleted_before`` включает границу (``deleted_at <= deleted_before``),
    ``deleted_after`` и ``last_edited_before`` тоже включающие.
    """
    owner_id: Optional[str] = None
    is_deleted: Optional[bool] = None
    last_edited_before: Optional[datetime] = None
    deleted_before: Optional[datetime] = None
    deleted_after: Optional[datetime] = None
    exclude_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    order_by: SortField = SortField.LAST_EDITED_AT
    descending: bool = False
    limit: Optional[int] = None


class WriteKind(Enum):
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class BatchWrite:
    """Одна условная запись в пакете; условие: совпадение версии"""
    kind: WriteKind
    record: DraftRecord
    expected_version: int

    @classmethod
    def update(cls, record: DraftRecord, expected_version: int) -> "BatchWrite":
        return cls(WriteKind.UPDATE, record, expected_version)

    @classmethod
    def delete(cls, record: DraftRecord) -> "BatchWrite":
        return cls(WriteKind.DELETE, record, record.version)


class DraftStore(ABC):
    """Адаптер документного хранилища черновиков"""

    @abstractmethod
    async def create(self, record: DraftRecord) -> DraftRecord:
        """Сохранение нового черновика"""

    @abstractmethod
    async def get(self, record_id: uuid.UUID) -> Optional[DraftRecord]:
        """Точечное чтение; None, если записи нет"""

    @abstractmethod
    async def update(self, record: DraftRecord, expected_version: int) -> DraftRecord:
        """Условная запись; возвращает сохранённую запись с новой версией"""

    @abstractmethod
    async def query(self, query: DraftQuery) -> List[DraftRecord]:
        """Выборка по фильтру"""

    @abstractmethod
    async def count(self, query: DraftQuery) -> int:
        """Подсчёт по фильтру (limit и сортировка игнорируются)"""

    @abstractmethod
    async def apply_batch(self, writes: Sequence[BatchWrite]) -> None:
        """Атомарное применение пакета; BatchWriteError при любом отказе"""

    @abstractmethod
    async def try_acquire_lease(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        """Захват именованной аренды, если она свободна или истекла"""

    @abstractmethod
    async def release_lease(self, name: str, holder: str) -> None:
        """Освобождение аренды текущим держателем"""
