from sqlalchemy import Column, String

from draft_lifecycle.db.base import Base, UTCDateTime


class CleanupLease(Base):
    """Аренда single-flight для очистки, общая для всех процессов воркера"""

    __tablename__ = "cleanup_leases"

    name = Column(String(64), primary_key=True)
    holder = Column(String(128), nullable=False)
    acquired_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
