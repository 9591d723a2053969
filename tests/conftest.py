import pytest
import pytest_asyncio

from shared.config import Settings
from deliverability.api.dependencies import DeliverabilityContainer
from deliverability.infrastructure.memory_quota_store import InMemoryQuotaStore

from doubles import WEBHOOK_SECRET, FakeClock, ManualExecutor, RecordingDispatcher


@pytest.fixture
def settings() -> Settings:
    return Settings(environment="test", webhook_secret=WEBHOOK_SECRET, json_logs=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryQuotaStore:
    return InMemoryQuotaStore(clock)


@pytest.fixture
def executor(clock) -> ManualExecutor:
    return ManualExecutor(clock)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def container(settings, store, executor, dispatcher, clock) -> DeliverabilityContainer:
    return DeliverabilityContainer.build(settings, store=store, executor=executor, dispatcher=dispatcher, clock=clock)


@pytest_asyncio.fixture
async def app_client(container):
    from httpx import ASGITransport, AsyncClient

    from deliverability.main import create_app

    app = create_app(container=container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

