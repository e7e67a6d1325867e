from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from draft_lifecycle.core.clock import Clock
from draft_lifecycle.core.config import Settings
from draft_lifecycle.core.db import create_engine, create_session_factory, init_db
from draft_lifecycle.core.security import create_access_token
from draft_lifecycle.db.repositories import DraftRepository
from draft_lifecycle.domains.cleanup import CleanupConfig, CleanupWorker
from draft_lifecycle.domains.drafts import DraftPolicy, DraftService, EventBus, LifecycleEvent

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
JWT_SECRET = "test-secret"


class ManualClock(Clock):
    """Часы, которые двигаются только вручную"""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingSubscriber:
    def __init__(self):
        self.events = []

    def __call__(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    @property
    def types(self):
        return [event.type for event in self.events]


def make_token(sub: str, **claims) -> str:
    return create_access_token({"sub": sub, **claims}, JWT_SECRET, expires_delta=timedelta(hours=1))


def auth_headers(sub: str, **claims) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, **claims)}"}


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def policy():
    return DraftPolicy()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'drafts.db'}"


@pytest.fixture
def test_settings(database_url):
    return Settings(database_url=database_url, cleanup_enabled=False, jwt_secret=JWT_SECRET)


@pytest_asyncio.fixture
async def store(test_settings):
    engine = create_engine(test_settings)
    await init_db(engine)
    yield DraftRepository(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def recorder():
    return RecordingSubscriber()


@pytest.fixture
def events(recorder):
    bus = EventBus()
    bus.subscribe(recorder)
    return bus


@pytest.fixture
def service(store, clock, policy, events):
    return DraftService(store, clock, policy, events)


@pytest.fixture
def worker(store, clock, policy, events):
    return CleanupWorker(store, clock, policy, config=CleanupConfig(batch_size=3), events=events)


async def seed(service, clock, count: int, owner_id: str = "inspector-1"):
    """Несколько черновиков с шагом lastEditedAt в одну секунду"""
    records = []
    for i in range(count):
        records.append(await service.create(owner_id, {"n": i}))
        clock.advance(seconds=1)
    return records
