"""Redis client construction for the shortlink cache.

The client is created once by the service container and injected into
``URLCache``; there is no module-level client.

How to Use
===========
**Step 1 — Create on startup**::
    client = create_redis(settings)
    cache = URLCache(client, ttl_seconds=settings.CACHE_TTL_SECONDS, ...)

**Step 2 — Cleanup on shutdown**::
    await close_redis(client)

Key Behaviours
===============
- Socket connect and read timeouts match CACHE_TIMEOUT_SECONDS, so a hung
  Redis cannot stall the redirect path beyond that bound.
- UTF-8 encoding with decode_responses for string payloads.

Functions:
    create_redis():  Builds the pooled async Redis client.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from shortlink.config import Settings

__all__ = ["close_redis", "create_redis"]


def create_redis(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.CACHE_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.CACHE_TIMEOUT_SECONDS,
    )


async def close_redis(client: redis.Redis) -> None:
    await client.aclose()
