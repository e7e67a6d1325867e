import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from draft_lifecycle.api.deps import get_current_owner, get_draft_service
from draft_lifecycle.domains.drafts import DraftRecord, DraftService
from draft_lifecycle.domains.drafts.schemas import (
    ActiveDraftsResponse, DraftAdvanceRequest, DraftCreate, DraftCreateResponse,
    DraftResponse, DraftUpdate, RecoverableDraftsResponse
)

router = APIRouter(prefix="/drafts", tags=["drafts"])


def to_response(service: DraftService, record: DraftRecord) -> DraftResponse:
    """Ответ с остатком окна восстановления для удалённых черновиков"""
    remaining = None
    if record.is_deleted:
        remaining = int(service.remaining_recovery_time(record).total_seconds())
    return DraftResponse.from_record(record, remaining)


@router.post("/", response_model=DraftCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(
    draft_data: DraftCreate,
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Создание нового черновика"""
    record = await service.create(owner_id, draft_data.payload)
    capacity = await service.capacity(owner_id)

    return DraftCreateResponse(
        draft=to_response(service, record),
        active_count=capacity.active_count,
        cap=capacity.cap,
        at_capacity=capacity.at_capacity
    )


@router.get("/", response_model=ActiveDraftsResponse)
async def list_active_drafts(
    cap: Optional[int] = Query(None, ge=0, le=100),
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Активные черновики владельца, последние изменённые первыми"""
    active = await service.list_active_drafts(owner_id, cap)

    return ActiveDraftsResponse(
        items=[to_response(service, record) for record in active.items],
        total_count=active.total_count,
        cap=active.cap,
        is_truncated=active.is_truncated
    )


@router.get("/recoverable", response_model=RecoverableDraftsResponse)
async def list_recoverable_drafts(
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Черновики в корзине, которые ещё можно восстановить"""
    records = await service.list_recoverable(owner_id)
    return RecoverableDraftsResponse(items=[to_response(service, record) for record in records])


@router.get("/{draft_id}", response_model=DraftResponse)
async def get_draft(
    draft_id: uuid.UUID,
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Получение черновика по id"""
    record = await service.get(draft_id, actor_id=owner_id)
    return to_response(service, record)


@router.patch("/{draft_id}", response_model=DraftResponse)
async def update_draft(
    draft_id: uuid.UUID,
    update_data: DraftUpdate,
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Сохранение полей черновика"""
    record = await service.update_payload(
        draft_id,
        update_data.payload,
        expected_version=update_data.expected_version,
        actor_id=owner_id
    )
    return to_response(service, record)


@router.post("/{draft_id}/advance", response_model=DraftResponse)
async def advance_draft(
    draft_id: uuid.UUID,
    advance_request: Optional[DraftAdvanceRequest] = None,
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Переход черновика на следующую стадию"""
    expected_version = advance_request.expected_version if advance_request else None
    record = await service.advance(draft_id, expected_version=expected_version, actor_id=owner_id)
    return to_response(service, record)


@router.delete("/{draft_id}", response_model=DraftResponse)
async def delete_draft(
    draft_id: uuid.UUID,
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Удаление черновика в корзину"""
    record = await service.soft_delete(draft_id, actor_id=owner_id)
    return to_response(service, record)


@router.post("/{draft_id}/restore", response_model=DraftResponse)
async def restore_draft(
    draft_id: uuid.UUID,
    owner_id: str = Depends(get_current_owner),
    service: DraftService = Depends(get_draft_service)
):
    """Восстановление черновика из корзины"""
    record = await service.restore(draft_id, actor_id=owner_id)
    return to_response(service, record)
