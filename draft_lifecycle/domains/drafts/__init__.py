from draft_lifecycle.domains.drafts.entities import (
    AUTO_EXPIRED_REASON, MANUAL_CLEANUP_REASON, STAGE_INFO,
    DeletionReason, DraftPolicy, DraftRecord, Stage, StageInfo
)
from draft_lifecycle.domains.drafts.events import EventBus, LifecycleEvent, LifecycleEventType
from draft_lifecycle.domains.drafts.expiration import ExpirationPolicy
from draft_lifecycle.domains.drafts.library import ActiveDrafts, DraftCapacity, DraftLibrary
from draft_lifecycle.domains.drafts.recovery import SoftDeleteManager
from draft_lifecycle.domains.drafts.services import DraftService
from draft_lifecycle.domains.drafts.stages import StageTransitionEngine
from draft_lifecycle.domains.drafts.store import BatchWrite, DraftQuery, DraftStore, SortField, WriteKind

__all__ = [
    "AUTO_EXPIRED_REASON", "MANUAL_CLEANUP_REASON", "STAGE_INFO",
    "DeletionReason", "DraftPolicy", "DraftRecord", "Stage", "StageInfo",
    "EventBus", "LifecycleEvent", "LifecycleEventType",
    "ExpirationPolicy",
    "ActiveDrafts", "DraftCapacity", "DraftLibrary",
    "SoftDeleteManager",
    "DraftService",
    "StageTransitionEngine",
    "BatchWrite", "DraftQuery", "DraftStore", "SortField", "WriteKind",
]
