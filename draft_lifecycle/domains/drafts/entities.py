import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional


class Stage(Enum):
    """Стадии черновика отчёта; порядок фиксирован"""
    STAGE1 = "stage1"
    STAGE2 = "stage2"
    STAGE3 = "stage3"

    @property
    def ordinal(self) -> int:
        return _STAGE_ORDER.index(self)

    def next(self) -> Optional["Stage"]:
        """Следующая стадия или None для последней"""
        index = self.ordinal + 1
        return _STAGE_ORDER[index] if index < len(_STAGE_ORDER) else None

    @property
    def is_final(self) -> bool:
        return self.next() is None


_STAGE_ORDER = (Stage.STAGE1, Stage.STAGE2, Stage.STAGE3)


class DeletionReason(Enum):
    USER = "user"
    SYSTEM = "system"


# Системные теги истечения
AUTO_EXPIRED_REASON = "auto_expired_inactivity"
MANUAL_CLEANUP_REASON = "manual_cleanup"


@dataclass(frozen=True)
class StageInfo:
    """Описание стадии для UI-коллабораторов"""
    stage: Stage
    label: str
    progress: int
    description: str


STAGE_INFO: Dict[Stage, StageInfo] = {
    Stage.STAGE1: StageInfo(
        stage=Stage.STAGE1,
        label="On-Site Data Collection",
        progress=33,
        description="Collect initial roof data, take photos, and document conditions on-site",
    ),
    Stage.STAGE2: StageInfo(
        stage=Stage.STAGE2,
        label="Annotation & Mapping",
        progress=66,
        description="Annotate findings, map issues to roof locations, and add descriptions",
    ),
    Stage.STAGE3: StageInfo(
        stage=Stage.STAGE3,
        label="Completed",
        progress=100,
        description="Report ready for branch manager review, pricing, and estimation",
    ),
}


@dataclass(frozen=True)
class DraftPolicy:
    """Параметры политики жизненного цикла"""
    recovery_window: timedelta = timedelta(hours=48)
    inactivity_window: timedelta = timedelta(days=30)
    active_draft_display_cap: int = 5

    @classmethod
    def from_settings(cls, settings) -> "DraftPolicy":
        return cls(
            recovery_window=timedelta(hours=settings.recovery_window_hours),
            inactivity_window=timedelta(days=settings.inactivity_window_days),
            active_draft_display_cap=settings.active_draft_display_cap,
        )


@dataclass(frozen=True)
class DraftRecord:
    """Черновик отчёта об инспекции.

    Экземпляры неизменяемы: каждая операция возвращает новую копию, а
    исходный снимок остаётся пригодным для условной записи по ``version``.
    ``payload`` принадлежит внешним коллабораторам и не интерпретируется.
    """
    id: uuid.UUID
    owner_id: str
    stage: Stage
    created_at: datetime
    last_edited_at: datetime
    stage1_completed_at: Optional[datetime] = None
    stage2_completed_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    expiration_reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @classmethod
    def create_draft(
        cls,
        owner_id: str,
        now: datetime,
        inactivity_window: timedelta,
        payload: Optional[Dict[str, Any]] = None
    ) -> "DraftRecord":
        """Создание нового черновика на первой стадии"""
        return cls(
            id=uuid.uuid4(),
            owner_id=owner_id,
            stage=Stage.STAGE1,
            created_at=now,
            last_edited_at=now,
            expires_at=now + inactivity_window,
            payload=dict(payload or {}),
        )

    @property
    def stage_info(self) -> StageInfo:
        return STAGE_INFO[self.stage]

    @property
    def can_advance(self) -> bool:
        return not self.is_deleted and not self.stage.is_final

    def touched(self, now: datetime, inactivity_window: timedelta) -> "DraftRecord":
        """Отметка редактирования: lastEditedAt и рекомендательный expiresAt"""
        return replace(self, last_edited_at=now, expires_at=now + inactivity_window)

    def with_stage_completed(self, completed: Stage, now: datetime) -> "DraftRecord":
        """Проставление отметки завершения стадии, только если её ещё нет"""
        if completed is Stage.STAGE1 and self.stage1_completed_at is None:
            return replace(self, stage1_completed_at=now)
        if completed is Stage.STAGE2 and self.stage2_completed_at is None:
            return replace(self, stage2_completed_at=now)
        return self

    def mark_deleted(self, now: datetime, expiration_reason: Optional[str] = None) -> "DraftRecord":
        """Перевод в корзину; isDeleted и deletedAt меняются только здесь"""
        return replace(
            self,
            is_deleted=True,
            deleted_at=now,
            expiration_reason=expiration_reason,
            last_edited_at=now,
        )

    def clear_deleted(self) -> "DraftRecord":
        """Снятие пометки удаления вместе с причиной истечения"""
        return replace(self, is_deleted=False, deleted_at=None, expiration_reason=None)

    def __repr__(self) -> str:
        return (
            f"DraftRecord(id={self.id}, owner_id={self.owner_id}, stage={self.stage.value}, "
            f"is_deleted={self.is_deleted}, version={self.version})"
        )
