import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from draft_lifecycle.domains.drafts.entities import DraftRecord, Stage


class DraftCreate(BaseModel):
    """Схема для создания черновика"""
    payload: Dict[str, Any] = Field(default_factory=dict)


class DraftUpdate(BaseModel):
    """Схема для сохранения полей черновика"""
    payload: Dict[str, Any]
    expected_version: Optional[int] = Field(None, ge=1)


class DraftAdvanceRequest(BaseModel):
    """Схема для перехода на следующую стадию"""
    expected_version: Optional[int] = Field(None, ge=1)


class StageOverrideRequest(BaseModel):
    """Схема для административной смены стадии"""
    stage: Stage


class DraftResponse(BaseModel):
    """Схема для ответа с данными черновика"""
    id: uuid.UUID
    owner_id: str
    stage: Stage
    stage_label: str
    stage_description: str
    progress: int
    can_advance: bool
    stage1_completed_at: Optional[datetime] = None
    stage2_completed_at: Optional[datetime] = None
    created_at: datetime
    last_edited_at: datetime
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    expiration_reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    remaining_recovery_seconds: Optional[int] = None
    payload: Dict[str, Any]
    version: int

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: DraftRecord, remaining_recovery_seconds: Optional[int] = None) -> "DraftResponse":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            stage=record.stage,
            stage_label=record.stage_info.label,
            stage_description=record.stage_info.description,
            progress=record.stage_info.progress,
            can_advance=record.can_advance,
            stage1_completed_at=record.stage1_completed_at,
            stage2_completed_at=record.stage2_completed_at,
            created_at=record.created_at,
            last_edited_at=record.last_edited_at,
            is_deleted=record.is_deleted,
            deleted_at=record.deleted_at,
            expiration_reason=record.expiration_reason,
            expires_at=record.expires_at,
            remaining_recovery_seconds=remaining_recovery_seconds,
            payload=record.payload,
            version=record.version,
        )


class DraftCreateResponse(BaseModel):
    """Схема для ответа на создание: черновик и рекомендация по лимиту"""
    draft: DraftResponse
    active_count: int
    cap: int
    at_capacity: bool


class ActiveDraftsResponse(BaseModel):
    """Схема для списка активных черновиков"""
    items: List[DraftResponse]
    total_count: int
    cap: int
    is_truncated: bool


class RecoverableDraftsResponse(BaseModel):
    """Схема для списка черновиков в корзине"""
    items: List[DraftResponse]
