"""Shared pytest fixtures for store, cache, service and API tests.

The store runs against a per-test SQLite file through aiosqlite; Redis is
replaced by ``InMemoryRedis`` so the suite needs no external services.
"""

import datetime
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortlink.cache import URLCache
from shortlink.clicks import ClickAccountant
from shortlink.config import Settings
from shortlink.dependencies import ServiceManager
from shortlink.main import app
from shortlink.store import URLStore
from shortlink.url_service import LinkService

START = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.UTC)
BASE_URL = "http://sho.rt"


class FakeClock:
    """Controllable UTC clock injected wherever components take ``clock=``."""

    def __init__(self, start: datetime.datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


class InMemoryRedis:
    """Async stand-in for ``redis.asyncio.Redis`` covering get/set/delete/ping.

    Expiry follows the injected clock, so cache TTLs can be tested without sleeping.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, datetime.datetime | None]] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        expires_at = self._clock() + datetime.timedelta(seconds=ex) if ex else None
        self._data[key] = (value, expires_at)
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._data.pop(key, None) is not None)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self._data.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._data


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        "REDIS_URL": "redis://localhost:6379/15",
        "BASE_URL": BASE_URL,
        "CLICK_WORKERS": 4,
        "CLICK_RETRY_DELAY_SECONDS": 0,
        "MAINTENANCE_INTERVAL_SECONDS": 0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def fake_redis(clock: FakeClock) -> InMemoryRedis:
    return InMemoryRedis(clock)


@pytest_asyncio.fixture
async def manager(settings: Settings, fake_redis: InMemoryRedis, clock: FakeClock) -> AsyncGenerator[ServiceManager, None]:
    services = ServiceManager(settings, redis_client=fake_redis, clock=clock)
    await services.initialize()
    yield services
    await services.cleanup()


@pytest.fixture
def store(manager: ServiceManager) -> URLStore:
    return manager.store


@pytest.fixture
def cache(manager: ServiceManager) -> URLCache:
    return manager.cache


@pytest.fixture
def accountant(manager: ServiceManager) -> ClickAccountant:
    return manager.accountant


@pytest.fixture
def service(manager: ServiceManager) -> LinkService:
    return manager.service


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    original = app.state.services
    app.state.services = manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.services = original
