"""Best-effort Redis mirror of short URL records.

The cache is an accelerator for the redirect path and is never authoritative.
Every failure (connection error, timeout, corrupt payload) is logged, counted
and turned into a miss; nothing raised inside Redis calls leaves this module.

Flow Diagram — lookup()
=======================
::
    ┌─────────────┐
    │ lookup(code)│
    └──────┬──────┘
           ▼
    ┌─────────────┐   disabled
    │ enabled?    ├────────────► MISS
    └──────┬──────┘
           ▼
    ┌─────────────┐   error / timeout
    │ GET url:code├────────────────────► UNAVAILABLE (treated as MISS)
    └──────┬──────┘
     None? │
    ┌──────┴─────┐
    │ YES        │ NO
    ▼            ▼
   MISS     ┌─────────┐  corrupt
            │ decode  ├──────────► MISS
            └────┬────┘
                 ▼
                HIT

Key Behaviours
===============
- One key per code (``url:<code>``); no secondary indexes.
- TTL is absolute from population time and never refreshed on read.
- TTL is clamped to the record's remaining lifetime, so an entry does not
  outlive the link it mirrors by more than a second.
- Every Redis call is bounded by ``timeout_seconds``.

Classes:
    URLCache:  Cache-aside helper around an async Redis client.
"""

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import redis.asyncio as redis
from prometheus_client import Counter
from pydantic import ValidationError
from redis.exceptions import RedisError

from shortlink.enums import CacheStatus
from shortlink.exceptions import CacheUnavailableError
from shortlink.schemas import URLRecord, utcnow

__all__ = ["URLCache"]

logger = logging.getLogger(__name__)

INVALIDATE_BATCH_SIZE = 500

CACHE_LOOKUPS_TOTAL = Counter(
    "shortlink_cache_lookups_total",
    "Cache lookups by outcome",
    ["status"],
)
CACHE_WRITE_FAILURES_TOTAL = Counter(
    "shortlink_cache_write_failures_total",
    "Cache writes or deletes that failed and were ignored",
    ["operation"],
)


class URLCache:
    """Cache-aside helper storing ``URLRecord`` JSON under ``url:<code>``."""

    KEY_PREFIX = "url"

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int,
        timeout_seconds: float,
        enabled: bool = True,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._timeout_seconds = timeout_seconds
        self._enabled = enabled
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._enabled

    @classmethod
    def key(cls, code: str) -> str:
        return f"{cls.KEY_PREFIX}:{code}"

    async def _call(self, operation: str, command: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await asyncio.wait_for(command(), timeout=self._timeout_seconds)
        except (RedisError, asyncio.TimeoutError, OSError) as exc:
            raise CacheUnavailableError(f"Cache {operation} failed: {exc!r}") from exc

    async def lookup(self, code: str) -> tuple[CacheStatus, URLRecord | None]:
        """Return the cache outcome together with the cached record, if any."""
        if not self._enabled:
            return CacheStatus.MISS, None

        try:
            raw = await self._call("get", lambda: self._client.get(self.key(code)))
        except CacheUnavailableError as exc:
            logger.warning(f"Cache unavailable, falling back to store for {code}: {exc}")
            CACHE_LOOKUPS_TOTAL.labels(status=CacheStatus.UNAVAILABLE).inc()
            return CacheStatus.UNAVAILABLE, None

        if raw is None:
            CACHE_LOOKUPS_TOTAL.labels(status=CacheStatus.MISS).inc()
            return CacheStatus.MISS, None

        try:
            record = URLRecord.model_validate_json(raw)
        except ValidationError as exc:
            logger.error(f"Cache deserialization error for {code}: {exc}")
            CACHE_LOOKUPS_TOTAL.labels(status=CacheStatus.MISS).inc()
            return CacheStatus.MISS, None

        CACHE_LOOKUPS_TOTAL.labels(status=CacheStatus.HIT).inc()
        return CacheStatus.HIT, record

    async def get(self, code: str) -> URLRecord | None:
        _, record = await self.lookup(code)
        return record

    def ttl_for(self, record: URLRecord) -> int:
        """Seconds to keep ``record`` cached; ``0`` means do not cache it at all."""
        ttl = self._ttl_seconds
        if record.expires_at is not None:
            remaining = int((record.expires_at - self._clock()).total_seconds())
            if remaining <= 0:
                return 0
            ttl = min(ttl, remaining)
        return max(1, ttl)

    async def put(self, record: URLRecord, ttl: int | None = None) -> None:
        if not self._enabled:
            return

        ttl = self.ttl_for(record) if ttl is None else ttl
        if ttl <= 0:
            return

        try:
            await self._call("set", lambda: self._client.set(self.key(record.code), record.model_dump_json(), ex=ttl))
        except CacheUnavailableError as exc:
            logger.warning(f"Cache populate failed for {record.code}: {exc}")
            CACHE_WRITE_FAILURES_TOTAL.labels(operation="set").inc()

    async def invalidate(self, code: str) -> None:
        await self.invalidate_many([code])

    async def invalidate_many(self, codes: Iterable[str]) -> None:
        if not self._enabled:
            return

        keys = [self.key(code) for code in codes]
        for start in range(0, len(keys), INVALIDATE_BATCH_SIZE):
            batch = keys[start : start + INVALIDATE_BATCH_SIZE]
            try:
                await self._call("delete", lambda: self._client.delete(*batch))
            except CacheUnavailableError as exc:
                logger.warning(f"Cache invalidation failed for {len(batch)} key(s): {exc}")
                CACHE_WRITE_FAILURES_TOTAL.labels(operation="delete").inc()

    async def ping(self) -> bool:
        if not self._enabled:
            return False
        try:
            return bool(await self._call("ping", self._client.ping))
        except CacheUnavailableError as exc:
            logger.warning(f"Cache ping failed: {exc}")
            return False
