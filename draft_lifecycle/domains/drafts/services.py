import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from draft_lifecycle.core.clock import Clock
from draft_lifecycle.core.errors import ConcurrentModification, NotFound
from draft_lifecycle.domains.drafts.entities import DraftPolicy, DraftRecord, Stage
from draft_lifecycle.domains.drafts.events import EventBus
from draft_lifecycle.domains.drafts.expiration import ExpirationPolicy
from draft_lifecycle.domains.drafts.library import ActiveDrafts, DraftCapacity, DraftLibrary
from draft_lifecycle.domains.drafts.recovery import SoftDeleteManager
from draft_lifecycle.domains.drafts.stages import StageTransitionEngine
from draft_lifecycle.domains.drafts.store import DraftStore


class DraftService:
    """Сервис для работы с черновиками по идентификатору записи"""

    def __init__(self, store: DraftStore, clock: Clock, policy: DraftPolicy, events: Optional[EventBus] = None):
        self.store = store
        self.clock = clock
        self.policy = policy
        self.events = events or EventBus()
        self.stages = StageTransitionEngine(store, clock, policy, self.events)
        self.recovery = SoftDeleteManager(store, clock, policy, self.events)
        self.expiration = ExpirationPolicy(policy, self.recovery)
        self.library = DraftLibrary(store, policy, self.recovery)

    async def create(self, owner_id: str, payload: Optional[Dict[str, Any]] = None) -> DraftRecord:
        """Создание нового черновика"""
        return await self.stages.create(owner_id, payload)

    async def get(self, record_id: uuid.UUID, actor_id: Optional[str] = None) -> DraftRecord:
        """Получение черновика по id"""
        return await self._load(record_id, actor_id)

    async def advance(
        self,
        record_id: uuid.UUID,
        expected_version: Optional[int] = None,
        actor_id: Optional[str] = None
    ) -> DraftRecord:
        """Переход черновика на следующую стадию"""
        record = await self._load(record_id, actor_id, expected_version)
        return await self.stages.advance(record)

    async def update_payload(
        self,
        record_id: uuid.UUID,
        payload: Dict[str, Any],
        expected_version: Optional[int] = None,
        actor_id: Optional[str] = None
    ) -> DraftRecord:
        """Сохранение полей черновика"""
        record = await self._load(record_id, actor_id, expected_version)
        return await self.stages.update_payload(record, payload)

    async def set_stage(self, record_id: uuid.UUID, stage: Stage) -> DraftRecord:
        """Административная смена стадии"""
        record = await self._load(record_id)
        return await self.stages.set_stage(record, stage)

    async def soft_delete(self, record_id: uuid.UUID, actor_id: Optional[str] = None) -> DraftRecord:
        """Удаление черновика в корзину пользователем"""
        record = await self._load(record_id, actor_id)
        return await self.recovery.soft_delete(record)

    async def restore(self, record_id: uuid.UUID, actor_id: Optional[str] = None) -> DraftRecord:
        """Восстановление черновика из корзины"""
        record = await self._load(record_id, actor_id)
        return await self.recovery.restore(record)

    async def list_active_drafts(self, owner_id: str, cap: Optional[int] = None) -> ActiveDrafts:
        return await self.library.list_active_drafts(owner_id, cap)

    async def list_recoverable(self, owner_id: str) -> List[DraftRecord]:
        return await self.library.list_recoverable(owner_id)

    async def capacity(self, owner_id: str) -> DraftCapacity:
        return await self.library.capacity(owner_id)

    def remaining_recovery_time(self, record: DraftRecord) -> timedelta:
        return self.recovery.remaining_recovery_time(record)

    async def _load(
        self,
        record_id: uuid.UUID,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> DraftRecord:
        record = await self.store.get(record_id)
        if record is None:
            # Физически удалённый черновик неотличим от несуществующего
            raise NotFound(f"Draft {record_id} not found")

        # Проверка прав доступа
        if actor_id is not None and record.owner_id != actor_id:
            raise PermissionError("You don't have permission to modify this draft")

        if expected_version is not None and record.version != expected_version:
            raise ConcurrentModification(
                f"Draft {record_id} is at version {record.version}, not {expected_version}; reload and try again"
            )
        return record
