"""URLCache tests: TTL clamping, failure absorption and the disabled mode."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

from shortlink.cache import URLCache
from shortlink.enums import CacheStatus
from shortlink.schemas import URLRecord


def make_record(clock, code: str = "abc123", expires_in: datetime.timedelta | None = None) -> URLRecord:
    now = clock()
    return URLRecord(
        code=code,
        target_url="https://example.com/page",
        created_at=now,
        expires_at=now + expires_in if expires_in else None,
    )


@pytest.fixture
def broken_redis() -> AsyncMock:
    client = AsyncMock(spec=redis.Redis)
    client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    client.set = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    client.delete = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    client.ping = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    return client


@pytest.mark.asyncio
async def test_put_then_lookup_hit(cache: URLCache, clock) -> None:
    record = make_record(clock)
    await cache.put(record)

    status, cached = await cache.lookup(record.code)
    assert status is CacheStatus.HIT
    assert cached == record


@pytest.mark.asyncio
async def test_lookup_miss(cache: URLCache) -> None:
    assert await cache.lookup("missing") == (CacheStatus.MISS, None)
    assert await cache.get("missing") is None


@pytest.mark.asyncio
async def test_key_namespace(cache: URLCache, fake_redis, clock) -> None:
    await cache.put(make_record(clock, code="xyz"))
    assert "url:xyz" in fake_redis


@pytest.mark.asyncio
async def test_ttl_uses_configured_value_without_expiry(cache: URLCache, fake_redis, clock, settings) -> None:
    await cache.put(make_record(clock, code="forever"))
    assert fake_redis.ttls["url:forever"] == settings.CACHE_TTL_SECONDS


@pytest.mark.asyncio
async def test_ttl_clamped_to_remaining_lifetime(cache: URLCache, fake_redis, clock) -> None:
    await cache.put(make_record(clock, code="soon", expires_in=datetime.timedelta(seconds=90)))
    assert fake_redis.ttls["url:soon"] == 90


@pytest.mark.asyncio
async def test_expired_record_is_not_cached(cache: URLCache, fake_redis, clock) -> None:
    record = make_record(clock, code="stale", expires_in=datetime.timedelta(seconds=30))
    clock.advance(seconds=31)
    assert cache.ttl_for(record) == 0

    await cache.put(record)
    assert "url:stale" not in fake_redis


@pytest.mark.asyncio
async def test_ttl_is_absolute_not_sliding(cache: URLCache, clock) -> None:
    record = make_record(clock, code="abs", expires_in=datetime.timedelta(seconds=100))
    await cache.put(record)

    clock.advance(seconds=60)
    assert await cache.get("abs") == record
    clock.advance(seconds=41)
    assert await cache.get("abs") is None


@pytest.mark.asyncio
async def test_corrupt_payload_is_a_miss(cache: URLCache, fake_redis) -> None:
    await fake_redis.set("url:bad", "{not json")
    assert await cache.lookup("bad") == (CacheStatus.MISS, None)


@pytest.mark.asyncio
async def test_invalidate_many(cache: URLCache, fake_redis, clock) -> None:
    for code in ("a", "b", "c"):
        await cache.put(make_record(clock, code=code))

    await cache.invalidate_many(["a", "b"])
    assert "url:a" not in fake_redis
    assert "url:b" not in fake_redis
    assert "url:c" in fake_redis

    await cache.invalidate("c")
    assert "url:c" not in fake_redis


@pytest.mark.asyncio
async def test_redis_errors_are_absorbed(broken_redis: AsyncMock, clock) -> None:
    cache = URLCache(broken_redis, ttl_seconds=60, timeout_seconds=0.1, clock=clock)

    assert await cache.lookup("abc") == (CacheStatus.UNAVAILABLE, None)
    await cache.put(make_record(clock))
    await cache.invalidate("abc")
    assert await cache.ping() is False


@pytest.mark.asyncio
async def test_slow_redis_times_out(clock) -> None:
    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    client = AsyncMock(spec=redis.Redis)
    client.get = AsyncMock(side_effect=hang)
    cache = URLCache(client, ttl_seconds=60, timeout_seconds=0.05, clock=clock)

    assert await cache.lookup("abc") == (CacheStatus.UNAVAILABLE, None)


@pytest.mark.asyncio
async def test_disabled_cache_never_touches_redis(clock) -> None:
    client = AsyncMock(spec=redis.Redis)
    cache = URLCache(client, ttl_seconds=60, timeout_seconds=0.1, enabled=False, clock=clock)

    await cache.put(make_record(clock))
    assert await cache.lookup("abc123") == (CacheStatus.MISS, None)
    await cache.invalidate("abc123")
    assert await cache.ping() is False

    client.get.assert_not_called()
    client.set.assert_not_called()
    client.delete.assert_not_called()
