"""Shared pytest fixtures: Redis and link store doubles, service and API client."""

import datetime
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from shortener.cache import LinkCache
from shortener.config import Settings
from shortener.dependencies import ServiceManager
from shortener.errors import DuplicateShortCode, StorageError
from shortener.link_service import LinkService
from shortener.main import app
from shortener.models import Link
from shortener.tasks import DetachedTaskRunner


class InMemoryLinkStore:
    """Link store double with the same expiry and uniqueness rules as ``LinkStore``."""

    def __init__(self) -> None:
        self.links: dict[str, Link] = {}
        self.fail_with: StorageError | None = None
        self.calls: list[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None:
            raise self.fail_with

    async def create(self, link: Link) -> None:
        self._check("create")
        existing = self.links.get(link.short_code)
        if existing is not None and existing.is_active():
            raise DuplicateShortCode(f"Short code '{link.short_code}' already exists")
        self.links[link.short_code] = link

    async def get_by_code(self, short_code: str) -> Link | None:
        self._check("get_by_code")
        link = self.links.get(short_code)
        if link is None or not link.is_active():
            return None
        return link

    async def increment_clicks(self, short_code: str) -> None:
        self._check("increment_clicks")
        link = self.links.get(short_code)
        if link is not None:
            link.clicks += 1

    async def exists(self, short_code: str) -> bool:
        self._check("exists")
        return short_code in self.links

    def expire(self, short_code: str) -> None:
        self.links[short_code].expires_at = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(
            seconds=1
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        BASE_URL="http://test",
        RATE_LIMIT_MAX_REQUESTS=1000,
        RATE_LIMIT_WINDOW_SECONDS=60,
    )


@pytest.fixture
def redis_data() -> dict[str, str]:
    return {}


@pytest.fixture
def mock_redis(redis_data: dict[str, str]) -> AsyncMock:
    """Redis client double backed by ``redis_data``."""
    client = AsyncMock(spec=redis.Redis)

    async def _get(key):
        return redis_data.get(key)

    async def _set(key, value, ex=None):
        redis_data[key] = value
        return True

    async def _incr(key):
        value = int(redis_data.get(key, 0)) + 1
        redis_data[key] = str(value)
        return value

    async def _mget(keys):
        return [redis_data.get(key) for key in keys]

    async def _exists(*keys):
        return sum(1 for key in keys if key in redis_data)

    async def _delete(*keys):
        return sum(1 for key in keys if redis_data.pop(key, None) is not None)

    client.get = AsyncMock(side_effect=_get)
    client.set = AsyncMock(side_effect=_set)
    client.incr = AsyncMock(side_effect=_incr)
    client.mget = AsyncMock(side_effect=_mget)
    client.exists = AsyncMock(side_effect=_exists)
    client.delete = AsyncMock(side_effect=_delete)

    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.set = MagicMock(side_effect=lambda key, value, ex=None: redis_data.__setitem__(key, value))
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline = MagicMock(return_value=pipe)
    return client


@pytest.fixture
def broken_redis() -> AsyncMock:
    """Redis client double whose every command fails with a connection error."""
    client = AsyncMock(spec=redis.Redis)
    error = RedisConnectionError("Connection refused")
    for name in ("get", "set", "incr", "mget", "exists", "delete"):
        setattr(client, name, AsyncMock(side_effect=error))
    client.pipeline = MagicMock(side_effect=error)
    return client


@pytest.fixture
def cache(mock_redis: AsyncMock) -> LinkCache:
    return LinkCache(mock_redis)


@pytest.fixture
def store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def tasks() -> DetachedTaskRunner:
    return DetachedTaskRunner()


@pytest.fixture
def link_service(
    cache: LinkCache, store: InMemoryLinkStore, tasks: DetachedTaskRunner, settings: Settings
) -> LinkService:
    return LinkService(cache, store, tasks, settings=settings)


@pytest_asyncio.fixture
async def services(cache: LinkCache, store: InMemoryLinkStore, settings: Settings) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager(settings)
    await manager.initialize(cache=cache, store=store)
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture
async def client(services: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    previous = app.state.services
    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.services = previous
