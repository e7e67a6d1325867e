from fastapi import APIRouter

from draft_lifecycle import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Проверка работоспособности"""
    return {"status": "ok", "version": __version__}
