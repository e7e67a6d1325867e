from draft_lifecycle.db.models.draft import Draft
from draft_lifecycle.db.models.lease import CleanupLease

__all__ = [
    "Draft",
    "CleanupLease",
]
