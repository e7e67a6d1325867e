import uuid

from fastapi import APIRouter, Depends

from draft_lifecycle.api.deps import get_container, require_superadmin
from draft_lifecycle.api.http.drafts import to_response
from draft_lifecycle.container import Container
from draft_lifecycle.domains.cleanup import CleanupTrigger
from draft_lifecycle.domains.cleanup.schemas import CleanupStatusResponse, CleanupSummaryResponse
from draft_lifecycle.domains.drafts.schemas import DraftResponse, StageOverrideRequest

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_superadmin)])


@router.put("/drafts/{draft_id}/stage", response_model=DraftResponse)
async def override_draft_stage(
    draft_id: uuid.UUID,
    override: StageOverrideRequest,
    container: Container = Depends(get_container)
):
    """Административная смена стадии в обход порядка"""
    record = await container.drafts.set_stage(draft_id, override.stage)
    return to_response(container.drafts, record)


@router.post("/cleanup", response_model=CleanupSummaryResponse)
async def trigger_cleanup(container: Container = Depends(get_container)):
    """Ручной запуск очистки"""
    summary = await container.scheduler.run_now(CleanupTrigger.MANUAL)
    return CleanupSummaryResponse(**summary.to_dict())


@router.get("/cleanup/status", response_model=CleanupStatusResponse)
async def cleanup_status(container: Container = Depends(get_container)):
    """Состояние планировщика очистки"""
    return CleanupStatusResponse(**container.scheduler.status())
