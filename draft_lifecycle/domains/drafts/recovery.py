import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from draft_lifecycle.core.clock import Clock
from draft_lifecycle.core.errors import AlreadyDeleted, InvalidTransition, RecoveryWindowExpired
from draft_lifecycle.domains.drafts.entities import (
    AUTO_EXPIRED_REASON, DeletionReason, DraftPolicy, DraftRecord
)
from draft_lifecycle.domains.drafts.events import EventBus, LifecycleEvent, LifecycleEventType
from draft_lifecycle.domains.drafts.store import DraftStore

logger = logging.getLogger(__name__)


class SoftDeleteManager:
    """Корзина черновиков: мягкое удаление и восстановление в пределах окна.

    Повторное удаление считается ошибкой AlreadyDeleted, а не no-op: вызывающий
    должен видеть, что запись уже в корзине. Граница окна восстановления
    включающая: ровно через ``recovery_window`` восстановить ещё можно.
    """

    def __init__(self, store: DraftStore, clock: Clock, policy: DraftPolicy, events: Optional[EventBus] = None):
        self.store = store
        self.clock = clock
        self.policy = policy
        self.events = events or EventBus()

    def mark_deleted(
        self,
        record: DraftRecord,
        reason: Union[DeletionReason, str],
        now: datetime,
        expiration_reason: Optional[str] = None
    ) -> DraftRecord:
        """Чистый переход в удалённое состояние без записи в хранилище"""
        reason = DeletionReason(reason)
        if record.is_deleted:
            raise AlreadyDeleted(f"Draft {record.id} is already deleted")

        if reason is DeletionReason.SYSTEM:
            return record.mark_deleted(now, expiration_reason=expiration_reason or AUTO_EXPIRED_REASON)
        return record.mark_deleted(now)

    async def soft_delete(
        self,
        record: DraftRecord,
        reason: Union[DeletionReason, str] = DeletionReason.USER,
        expiration_reason: Optional[str] = None
    ) -> DraftRecord:
        """Мягкое удаление черновика"""
        deleted = self.mark_deleted(record, reason, self.clock.now(), expiration_reason)
        saved = await self.store.update(deleted, expected_version=record.version)
        logger.info(f"Draft {saved.id} soft-deleted ({DeletionReason(reason).value})")

        await self.events.publish(
            LifecycleEvent(
                type=LifecycleEventType.SOFT_DELETED,
                occurred_at=saved.deleted_at,
                record_id=saved.id,
                owner_id=saved.owner_id,
                data={
                    "reason": DeletionReason(reason).value,
                    "expiration_reason": saved.expiration_reason,
                    "recoverable_until": self.recovery_deadline(saved).isoformat(),
                },
            )
        )
        return saved

    async def restore(self, record: DraftRecord) -> DraftRecord:
        """Восстановление черновика из корзины"""
        if not record.is_deleted:
            raise InvalidTransition(f"Draft {record.id} is not deleted")

        now = self.clock.now()
        if not self.is_recoverable(record, now):
            raise RecoveryWindowExpired(
                f"Draft {record.id} is no longer recoverable: the "
                f"{self._window_hours()}-hour recovery window ended at "
                f"{self.recovery_deadline(record).isoformat()}"
            )

        restored = record.clear_deleted().touched(now, self.policy.inactivity_window)
        saved = await self.store.update(restored, expected_version=record.version)
        logger.info(f"Draft {saved.id} restored")

        await self.events.publish(
            LifecycleEvent(
                type=LifecycleEventType.RESTORED,
                occurred_at=now,
                record_id=saved.id,
                owner_id=saved.owner_id,
                data={"stage": saved.stage.value},
            )
        )
        return saved

    def is_recoverable(self, record: DraftRecord, now: Optional[datetime] = None) -> bool:
        """Удалён и окно восстановления ещё не закрылось (граница включительно)"""
        if not record.is_deleted or record.deleted_at is None:
            return False
        now = now or self.clock.now()
        return now - record.deleted_at <= self.policy.recovery_window

    def remaining_recovery_time(self, record: DraftRecord, now: Optional[datetime] = None) -> timedelta:
        """Сколько осталось до конца окна восстановления; ноль, если не удалён.

        Только для отображения: решение о физическом удалении воркер
        очистки принимает по своему собственному расчёту.
        """
        if not record.is_deleted or record.deleted_at is None:
            return timedelta(0)
        now = now or self.clock.now()
        return max(timedelta(0), self.policy.recovery_window - (now - record.deleted_at))

    def recovery_deadline(self, record: DraftRecord) -> Optional[datetime]:
        if record.deleted_at is None:
            return None
        return record.deleted_at + self.policy.recovery_window

    def _window_hours(self) -> int:
        return int(self.policy.recovery_window.total_seconds() // 3600)
