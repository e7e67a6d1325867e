import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class LifecycleEventType(Enum):
    """Типы событий жизненного цикла черновика"""
    CREATED = "draft.created"
    UPDATED = "draft.updated"
    STAGE_ADVANCED = "draft.stage_advanced"
    STAGE_SET = "draft.stage_set"
    SOFT_DELETED = "draft.soft_deleted"
    RESTORED = "draft.restored"
    EXPIRED = "draft.expired"
    HARD_DELETED = "draft.hard_deleted"
    CLEANUP_COMPLETED = "cleanup.completed"
    CLEANUP_FAILED = "cleanup.failed"


@dataclass(frozen=True)
class LifecycleEvent:
    """Событие для внешних подписчиков (уведомления, аудит)"""
    type: LifecycleEventType
    occurred_at: datetime
    record_id: Optional[uuid.UUID] = None
    owner_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация события в словарь"""
        return {
            "type": self.type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "record_id": str(self.record_id) if self.record_id else None,
            "owner_id": self.owner_id,
            "data": self.data,
        }


Subscriber = Callable[[LifecycleEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Внутрипроцессная шина событий.

    Публикация выполняется после успешной записи. Ошибка подписчика
    логируется и не влияет ни на операцию, ни на других подписчиков.
    """

    def __init__(self):
        self._subscribers: Dict[Optional[LifecycleEventType], List[Subscriber]] = {}

    def subscribe(self, handler: Subscriber, event_type: Optional[LifecycleEventType] = None) -> None:
        """Подписка на тип события; без типа на все события"""
        self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, handler: Subscriber, event_type: Optional[LifecycleEventType] = None) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: LifecycleEvent) -> None:
        handlers = self._subscribers.get(event.type, []) + self._subscribers.get(None, [])
        for handler in handlers:
            try:
                result = handler(event)
                if result is not None:
                    await result
            except Exception as e:
                logger.error(f"Subscriber {handler!r} failed on {event.type.value}: {e}")
