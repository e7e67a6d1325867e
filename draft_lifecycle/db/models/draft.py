from sqlalchemy import JSON, Boolean, Column, Enum, Index, Integer, String, Uuid

from draft_lifecycle.db.base import Base, UTCDateTime
from draft_lifecycle.domains.drafts.entities import Stage


class Draft(Base):
    __tablename__ = "drafts"

    id = Column(Uuid, primary_key=True)
    owner_id = Column(String(128), nullable=False)
    stage = Column(
        Enum(
            Stage,
            name="draft_stage",
            native_enum=False,
            length=16,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
    )
    stage1_completed_at = Column(UTCDateTime, nullable=True)
    stage2_completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
    last_edited_at = Column(UTCDateTime, nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(UTCDateTime, nullable=True)
    expiration_reason = Column(String(255), nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        # Библиотека черновиков владельца
        Index("ix_drafts_owner_active", "owner_id", "is_deleted", "last_edited_at"),
        # Кандидаты очистки
        Index("ix_drafts_stale", "is_deleted", "last_edited_at"),
        Index("ix_drafts_trash", "is_deleted", "deleted_at"),
    )
