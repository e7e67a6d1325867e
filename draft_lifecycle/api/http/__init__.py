from draft_lifecycle.api.http.admin import router as admin_router
from draft_lifecycle.api.http.drafts import router as drafts_router
from draft_lifecycle.api.http.health import router as health_router

__all__ = [
    "health_router",
    "drafts_router",
    "admin_router",
]
