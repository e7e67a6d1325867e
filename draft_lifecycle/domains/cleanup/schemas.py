from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CleanupSummaryResponse(BaseModel):
    """Схема для ответа с итогами прогона очистки"""
    expired_count: int
    hard_deleted_count: int
    error_count: int
    timestamp: datetime
    trigger: str
    duration_seconds: float


class CleanupStatusResponse(BaseModel):
    """Схема для состояния планировщика очистки"""
    status: str
    worker_state: str
    cadence_seconds: int
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_summary: Optional[CleanupSummaryResponse] = None
    last_error: Optional[str] = None
