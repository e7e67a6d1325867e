from draft_lifecycle.db.repositories.draft_repository import DraftRepository
from draft_lifecycle.db.repositories.lease_repository import LeaseRepository

__all__ = [
    "DraftRepository",
    "LeaseRepository",
]
