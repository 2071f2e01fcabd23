"""Service container and FastAPI dependency functions.

The ``ServiceManager`` builds every shared resource once (engine, session
factory, Redis client) and wires the components on top of them. It lives on
``app.state.services`` rather than in a module global, so tests and the
maintenance CLI can build their own.

Wiring Diagram
==============
::
    Settings ──► engine ──► session_factory ──► URLStore ─┬─► CodeAllocator
                                                          ├─► ClickAccountant
    Settings ──► redis client ──► URLCache ───────────────┼─► Maintenance
                                                          └─► LinkService

How to Use
===========
**Step 1 — Initialize on startup**::
    manager = ServiceManager(settings)
    await manager.initialize()

**Step 2 — Inject into route handlers**::
    @router.get("/{code}")
    async def redirect(code: str, service: LinkService = Depends(get_link_service)):
        ...

**Step 3 — Cleanup on shutdown**::
    await manager.cleanup()

Key Behaviours
===============
- Click workers are drained before the engine is disposed.
- ``background_tasks=False`` skips the click workers and the sweep loop
  (used by the one-shot maintenance command).
- A Redis client passed in by the caller is not closed by ``cleanup``.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlink.allocator import CodeAllocator
from shortlink.cache import URLCache
from shortlink.clicks import ClickAccountant
from shortlink.config import Settings, get_settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.maintenance import Maintenance
from shortlink.redis import close_redis, create_redis
from shortlink.schemas import utcnow
from shortlink.store import URLStore
from shortlink.url_service import LinkService

__all__ = ["ServiceManager", "get_link_service", "get_service_manager", "setup_logger"]

LOGGER_NAME = "shortlink"


def setup_logger(level: str = "INFO") -> logging.Logger:
    """Configure the package logger once; module loggers propagate to it."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


class ServiceManager:
    """Owns the shared resources and the wired components."""

    def __init__(
        self,
        settings: Settings | None = None,
        redis_client: redis.Redis | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
        background_tasks: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self._redis_client = redis_client
        self._owns_redis = redis_client is None
        self._clock = clock
        self._background_tasks = background_tasks
        self._engine: AsyncEngine | None = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize shared resources once. Concurrent callers wait for the first."""
        if self._initialized:
            return
        async with self._lock:
            if not self._initialized:
                await self._setup()

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        async with self._lock:
            if self._initialized:
                await self._teardown()

    async def _setup(self) -> None:
        settings = self.settings
        self.logger = setup_logger(settings.LOG_LEVEL)

        self._engine = create_engine(settings)
        await init_db(self._engine)
        self.store = URLStore(create_session_factory(self._engine))

        if self._redis_client is None:
            self._redis_client = create_redis(settings)
        self.cache = URLCache(
            self._redis_client,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            timeout_seconds=settings.CACHE_TIMEOUT_SECONDS,
            enabled=settings.CACHE_ENABLED,
            clock=self._clock,
        )

        self.allocator = CodeAllocator.from_settings(self.store, settings, clock=self._clock)
        self.accountant = ClickAccountant.from_settings(self.store, settings, clock=self._clock)
        self.maintenance = Maintenance(
            self.store,
            self.cache,
            interval_seconds=settings.MAINTENANCE_INTERVAL_SECONDS,
            clock=self._clock,
        )
        self.service = LinkService(
            self.store,
            self.cache,
            self.allocator,
            self.accountant,
            settings,
            clock=self._clock,
        )

        if self._background_tasks:
            self.accountant.start()
            self.maintenance.start()

        self._initialized = True
        self.logger.info(f"{settings.APP_NAME} services initialized ({settings.APP_ENV})")

    async def _teardown(self) -> None:
        await self.maintenance.stop()
        await self.accountant.stop()
        if self._owns_redis and self._redis_client is not None:
            await close_redis(self._redis_client)
            self._redis_client = None
        if self._engine is not None:
            await close_db(self._engine)
            self._engine = None
        self._initialized = False
        self.logger.info("Services shut down")


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager = request.app.state.services
    if not manager.initialized:
        await manager.initialize()
    return manager


def get_link_service(manager: ServiceManager = Depends(get_service_manager)) -> LinkService:
    return manager.service
