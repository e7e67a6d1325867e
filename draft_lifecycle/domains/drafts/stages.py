import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from draft_lifecycle.core.clock import Clock
from draft_lifecycle.core.errors import InvalidTransition
from draft_lifecycle.domains.drafts.entities import DraftPolicy, DraftRecord, Stage
from draft_lifecycle.domains.drafts.events import EventBus, LifecycleEvent, LifecycleEventType
from draft_lifecycle.domains.drafts.store import DraftStore

logger = logging.getLogger(__name__)


class StageTransitionEngine:
    """Движок стадий: stage1 → stage2 → stage3, без откатов.

    Каждая операция делает одну условную запись по версии снимка, который
    передал вызывающий. Повторов внутри нет: конфликт версий уходит
    вызывающему как ConcurrentModification.
    """

    def __init__(self, store: DraftStore, clock: Clock, policy: DraftPolicy, events: Optional[EventBus] = None):
        self.store = store
        self.clock = clock
        self.policy = policy
        self.events = events or EventBus()

    async def create(self, owner_id: str, payload: Optional[Dict[str, Any]] = None) -> DraftRecord:
        """Создание черновика на первой стадии"""
        if not owner_id:
            raise ValueError("owner_id is required")

        record = DraftRecord.create_draft(
            owner_id=owner_id,
            now=self.clock.now(),
            inactivity_window=self.policy.inactivity_window,
            payload=payload
        )
        created = await self.store.create(record)
        logger.info(f"Draft {created.id} created for owner {owner_id}")

        await self._publish(LifecycleEventType.CREATED, created)
        return created

    async def advance(self, record: DraftRecord) -> DraftRecord:
        """Переход на следующую стадию"""
        if record.is_deleted:
            raise InvalidTransition(f"Draft {record.id} is deleted and cannot be advanced")

        next_stage = record.stage.next()
        if next_stage is None:
            raise InvalidTransition(
                f"Draft {record.id} is already at the final stage ({record.stage.value})"
            )

        now = self.clock.now()
        advanced = replace(
            record.with_stage_completed(record.stage, now).touched(now, self.policy.inactivity_window),
            stage=next_stage,
        )
        saved = await self.store.update(advanced, expected_version=record.version)
        logger.info(f"Draft {saved.id} advanced {record.stage.value} -> {next_stage.value}")

        await self._publish(
            LifecycleEventType.STAGE_ADVANCED,
            saved,
            from_stage=record.stage.value,
            to_stage=next_stage.value,
        )
        return saved

    async def set_stage(self, record: DraftRecord, target_stage: Stage) -> DraftRecord:
        """Административная установка стадии в обход монотонности.

        Только для доверенных внутренних вызовов (исправление ошибочной
        загрузки). Отметки завершения стадий не трогаются.
        """
        if record.is_deleted:
            raise InvalidTransition(f"Draft {record.id} is deleted; restore it before changing the stage")

        now = self.clock.now()
        changed = replace(record.touched(now, self.policy.inactivity_window), stage=target_stage)
        saved = await self.store.update(changed, expected_version=record.version)
        logger.warning(
            f"Draft {saved.id} stage overridden {record.stage.value} -> {target_stage.value}"
        )

        await self._publish(
            LifecycleEventType.STAGE_SET,
            saved,
            from_stage=record.stage.value,
            to_stage=target_stage.value,
        )
        return saved

    async def update_payload(self, record: DraftRecord, payload: Dict[str, Any]) -> DraftRecord:
        """Редактирование полей черновика; содержимое payload не проверяется"""
        if record.is_deleted:
            raise InvalidTransition(f"Draft {record.id} is deleted and cannot be edited")

        now = self.clock.now()
        edited = replace(record.touched(now, self.policy.inactivity_window), payload=dict(payload))
        saved = await self.store.update(edited, expected_version=record.version)

        await self._publish(LifecycleEventType.UPDATED, saved)
        return saved

    async def _publish(self, event_type: LifecycleEventType, record: DraftRecord, **data) -> None:
        await self.events.publish(
            LifecycleEvent(
                type=event_type,
                occurred_at=record.last_edited_at,
                record_id=record.id,
                owner_id=record.owner_id,
                data={"stage": record.stage.value, **data},
            )
        )
