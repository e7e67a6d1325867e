from datetime import datetime
from typing import Optional

from draft_lifecycle.domains.drafts.entities import (
    AUTO_EXPIRED_REASON, DeletionReason, DraftPolicy, DraftRecord
)
from draft_lifecycle.domains.drafts.recovery import SoftDeleteManager


class ExpirationPolicy:
    """Политика истечения неактивных черновиков.

    Устаревание считается от ``last_edited_at`` в момент проверки, а не по
    сохранённому ``expires_at``: последний лишь подсказка для UI.
    """

    def __init__(self, policy: DraftPolicy, recovery: SoftDeleteManager):
        self.policy = policy
        self.recovery = recovery

    def stale_cutoff(self, now: datetime) -> datetime:
        """Черновики, не редактировавшиеся с этого момента, устарели"""
        return now - self.policy.inactivity_window

    def is_stale(self, record: DraftRecord, now: datetime) -> bool:
        return not record.is_deleted and now - record.last_edited_at >= self.policy.inactivity_window

    def apply_expiration(
        self,
        record: DraftRecord,
        now: datetime,
        expiration_reason: str = AUTO_EXPIRED_REASON
    ) -> Optional[DraftRecord]:
        """Удалённая системой копия устаревшего черновика или None. Ничего не сохраняет"""
        if not self.is_stale(record, now):
            return None
        return self.recovery.mark_deleted(
            record,
            DeletionReason.SYSTEM,
            now,
            expiration_reason=expiration_reason
        )
