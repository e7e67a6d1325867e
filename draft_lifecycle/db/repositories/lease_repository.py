from datetime import datetime, timedelta

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draft_lifecycle.core.errors import StoreUnavailable
from draft_lifecycle.db.models.lease import CleanupLease


class LeaseRepository:
    """Репозиторий арендных записей для межпроцессного single-flight"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def try_acquire(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        """Захват аренды: свободная, истёкшая или уже своя"""
        expires_at = now + ttl
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(CleanupLease)
                        .where(
                            CleanupLease.name == name,
                            or_(CleanupLease.expires_at <= now, CleanupLease.holder == holder),
                        )
                        .values(holder=holder, acquired_at=now, expires_at=expires_at)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        return True
                    if await session.get(CleanupLease, name) is not None:
                        return False
                    session.add(
                        CleanupLease(name=name, holder=holder, acquired_at=now, expires_at=expires_at)
                    )
        except IntegrityError:
            # Параллельный процесс успел создать запись первым
            return False
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to acquire lease '{name}': {exc}") from exc
        return True

    async def release(self, name: str, holder: str) -> None:
        """Освобождение аренды; чужую аренду не трогаем"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(CleanupLease)
                        .where(CleanupLease.name == name, CleanupLease.holder == holder)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Failed to release lease '{name}': {exc}") from exc
