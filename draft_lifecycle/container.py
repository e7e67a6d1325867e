from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from draft_lifecycle.core.clock import Clock, SystemClock
from draft_lifecycle.core.config import Settings
from draft_lifecycle.core.db import create_engine, create_session_factory
from draft_lifecycle.db.repositories import DraftRepository
from draft_lifecycle.domains.cleanup import CleanupConfig, CleanupScheduler, CleanupWorker
from draft_lifecycle.domains.drafts import DraftPolicy, DraftService, DraftStore, EventBus


@dataclass
class Container:
    """Собранные зависимости приложения"""
    settings: Settings
    engine: AsyncEngine
    store: DraftStore
    clock: Clock
    events: EventBus
    drafts: DraftService
    worker: CleanupWorker
    scheduler: CleanupScheduler

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.engine.dispose()


def build_container(
    settings: Settings,
    clock: Optional[Clock] = None,
    events: Optional[EventBus] = None
) -> Container:
    """Сборка сервисов по настройкам; часы и шину событий можно подменить"""
    engine = create_engine(settings)
    store = DraftRepository(create_session_factory(engine))
    clock = clock or SystemClock()
    events = events or EventBus()
    policy = DraftPolicy.from_settings(settings)

    worker = CleanupWorker(
        store,
        clock,
        policy,
        config=CleanupConfig.from_settings(settings),
        events=events,
    )
    return Container(
        settings=settings,
        engine=engine,
        store=store,
        clock=clock,
        events=events,
        drafts=DraftService(store, clock, policy, events),
        worker=worker,
        scheduler=CleanupScheduler(worker, timedelta(seconds=settings.cleanup_cadence_seconds)),
    )
