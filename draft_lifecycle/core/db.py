from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from draft_lifecycle.core.config import Settings
from draft_lifecycle.db.base import Base


def create_engine(settings: Settings) -> AsyncEngine:
    """Асинхронный движок по настройкам приложения"""
    return create_async_engine(settings.database_url, future=True, echo=settings.sql_echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Фабрика сессий; одна сессия на одну операцию хранилища"""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Создание таблиц без миграций (локальный запуск и тесты)"""
    # Импорт регистрирует модели в метаданных
    import draft_lifecycle.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
