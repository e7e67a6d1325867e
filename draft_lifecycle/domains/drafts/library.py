from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from draft_lifecycle.domains.drafts.entities import DraftPolicy, DraftRecord
from draft_lifecycle.domains.drafts.recovery import SoftDeleteManager
from draft_lifecycle.domains.drafts.store import DraftQuery, DraftStore, SortField


@dataclass(frozen=True)
class ActiveDrafts:
    """Активные черновики владельца с явным общим количеством"""
    items: List[DraftRecord]
    total_count: int
    cap: int

    @property
    def is_truncated(self) -> bool:
        return self.total_count > len(self.items)


@dataclass(frozen=True)
class DraftCapacity:
    """Рекомендательная проверка лимита перед созданием черновика"""
    active_count: int
    cap: int

    @property
    def at_capacity(self) -> bool:
        return self.active_count >= self.cap


class DraftLibrary:
    """Библиотека черновиков: только чтение, без побочных эффектов.

    Лимит черновиков на владельца является политикой отображения, а не
    ограничение хранилища: количество считается индексированным запросом.
    """

    def __init__(self, store: DraftStore, policy: DraftPolicy, recovery: SoftDeleteManager):
        self.store = store
        self.policy = policy
        self.recovery = recovery

    async def list_active_drafts(self, owner_id: str, cap: Optional[int] = None) -> ActiveDrafts:
        """Неудалённые черновики по убыванию lastEditedAt, не более cap"""
        cap = self.policy.active_draft_display_cap if cap is None else cap
        if cap < 0:
            raise ValueError("cap must be non-negative")

        active = DraftQuery(owner_id=owner_id, is_deleted=False)
        total_count = await self.store.count(active)
        items = []
        if cap > 0 and total_count > 0:
            items = await self.store.query(
                DraftQuery(
                    owner_id=owner_id,
                    is_deleted=False,
                    order_by=SortField.LAST_EDITED_AT,
                    descending=True,
                    limit=cap,
                )
            )
        return ActiveDrafts(items=items, total_count=total_count, cap=cap)

    async def list_recoverable(self, owner_id: str) -> List[DraftRecord]:
        """Черновики в корзине, которые ещё можно восстановить, по убыванию deletedAt"""
        now = self.recovery.clock.now()
        candidates = await self.store.query(
            DraftQuery(
                owner_id=owner_id,
                is_deleted=True,
                deleted_after=now - self.policy.recovery_window,
                order_by=SortField.DELETED_AT,
                descending=True,
            )
        )
        # Повторная проверка тем же расчётом, что видит пользователь
        return [
            record for record in candidates
            if self.recovery.remaining_recovery_time(record, now) > timedelta(0)
        ]

    async def capacity(self, owner_id: str) -> DraftCapacity:
        active_count = await self.store.count(DraftQuery(owner_id=owner_id, is_deleted=False))
        return DraftCapacity(active_count=active_count, cap=self.policy.active_draft_display_cap)
