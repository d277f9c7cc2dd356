import os

# Settings are loaded at import time; point them at throwaway values first.
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_counter_queue.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_FILE_PATH", "logs/test.log")

import asyncio
import json
import pytest
from httpx import ASGITransport, AsyncClient

from counter_queue.core.counter_lock import CounterLockManager
from counter_queue.core.pubsub import QueueEventBroker
from counter_queue.core.security import create_access_token, get_password_hash
from counter_queue.db.database import create_engine_for, create_session_factory, get_db_session
from counter_queue.main import app, build_services
from counter_queue.models import Admin, Base, Counter
from counter_queue.services.counter_service import CounterService
from counter_queue.services.notifier import QueueNotifier
from counter_queue.services.queue_manager import QueueManagerService

TEST_CHANNEL = "queue_updates"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "adminpassword"


@pytest.fixture(scope="function")
async def test_db_engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'counter_queue_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_db_engine):
    return create_session_factory(test_db_engine)


@pytest.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def broker():
    return QueueEventBroker()


@pytest.fixture
def lock_manager():
    return CounterLockManager()


@pytest.fixture
def notifier(broker):
    return QueueNotifier(broker, TEST_CHANNEL)


@pytest.fixture
def queue_service(session_factory, notifier, lock_manager):
    return QueueManagerService(
        session_factory=session_factory,
        notifier=notifier,
        lock_manager=lock_manager,
        service_minutes_per_ticket=5,
    )


@pytest.fixture
def counter_service(session_factory, lock_manager):
    return CounterService(session_factory=session_factory, lock_manager=lock_manager)


class EventRecorder:
    """Collects payloads published on the test channel."""

    def __init__(self, subscription):
        self.subscription = subscription

    def drain(self) -> list:
        payloads = []
        while True:
            try:
                payloads.append(json.loads(self.subscription.queue.get_nowait()))
            except asyncio.QueueEmpty:
                return payloads

    def kinds(self) -> list:
        return [payload["event"] for payload in self.drain()]


@pytest.fixture
async def events(broker):
    subscription = await broker.subscribe(TEST_CHANNEL)
    yield EventRecorder(subscription)
    await subscription.close()


@pytest.fixture
def make_counter(session_factory):
    """
    Factory fixture that inserts a counter directly, bypassing the admin
    service so tests can start from arbitrary serving numbers.
    """
    async def _factory(name: str = "Counter A", max_queue: int = 99, current_queue: int = 0, is_active: bool = True) -> Counter:
        async with session_factory() as session:
            counter = Counter(name=name, max_queue=max_queue, current_queue=current_queue, is_active=is_active)
            session.add(counter)
            await session.commit()
            await session.refresh(counter)
            return counter

    return _factory


@pytest.fixture
async def test_admin(session_factory):
    async with session_factory() as session:
        admin = Admin(username=ADMIN_USERNAME, hashed_password=get_password_hash(ADMIN_PASSWORD))
        session.add(admin)
        await session.commit()
        await session.refresh(admin)
        return admin


@pytest.fixture
def admin_headers(test_admin):
    token, _ = create_access_token(data={"sub": test_admin.username})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
async def client(session_factory):
    async def _get_test_db_session():
        async with session_factory() as session:
            yield session

    # ASGITransport does not run startup events, so wire the services here
    build_services(app, session_factory, None)
    app.dependency_overrides[get_db_session] = _get_test_db_session
    limiter_enabled = app.state.limiter.enabled
    app.state.limiter.enabled = False

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.state.limiter.enabled = limiter_enabled
    app.dependency_overrides.clear()
