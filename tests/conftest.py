"""Shared pytest fixtures for engine, store and API tests."""

import datetime
import logging
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortlink.clicks import ClickRecorder
from shortlink.config import Settings
from shortlink.dependencies import ServiceManager, get_service_manager
from shortlink.link_service import LinkService
from shortlink.main import app
from shortlink.memory_store import InMemoryLinkStore
from shortlink.resolver import Resolver
from shortlink.security import PolicyCheck, SecurityChecker

OWNER = "owner-1"


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime.datetime | None = None):
        self.now = start or datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        STORE_BACKEND="memory",
        CACHE_ENABLED=False,
        SECURITY_PROBE_ENABLED=False,
        BASE_URL="http://sho.rt",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("shortlink.tests")


@pytest.fixture
def memory_store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def security(logger) -> SecurityChecker:
    return SecurityChecker(PolicyCheck(), logger)


@pytest.fixture
def link_service(memory_store, security, logger, settings, clock) -> LinkService:
    return LinkService(
        store=memory_store,
        security=security,
        logger=logger,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def recorder(memory_store, logger) -> ClickRecorder:
    return ClickRecorder(memory_store, logger)


@pytest.fixture
def resolver(memory_store, recorder, logger, clock) -> Resolver:
    return Resolver(memory_store, recorder, logger, clock=clock)


@pytest_asyncio.fixture
async def manager(settings, clock) -> AsyncGenerator[ServiceManager, None]:
    service_manager = ServiceManager()
    await service_manager.initialize(settings=settings, clock=clock)
    yield service_manager
    await service_manager.cleanup()


@pytest_asyncio.fixture
async def client(manager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-Owner-Id": OWNER}) as ac:
        yield ac

    app.dependency_overrides.clear()
