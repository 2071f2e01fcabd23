"""Database engine and session factory for the shortlink store.

This module provides SQLAlchemy async engine setup and session factory creation.
Nothing here is a module-level singleton: the service container builds one engine
at startup and hands the session factory to ``URLStore``.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │ Service     │
    │ startup     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_     │
    │ engine()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()   │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ URLStore    │
    │ per-op      │
    │ sessions    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ (shutdown)  │
    └─────────────┘

How to Use
===========
**Step 1 — Build on startup**::
    engine = create_engine(settings)
    await init_db(engine)
    session_factory = create_session_factory(engine)

**Step 2 — Hand the factory to the store**::
    store = URLStore(session_factory)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Connection pooling is configured from settings (size, overflow, acquire timeout).
- SQLite URLs (used by the test suite) skip queue-pool sizing arguments.
- Tables are created on startup; schema migration tooling is out of scope.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Builds the async engine from settings.
    create_session_factory():  Builds the async session factory.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import Settings

__all__ = ["Base", "close_db", "create_engine", "create_session_factory", "init_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    if settings.DATABASE_URL.startswith("sqlite"):
        return create_async_engine(settings.DATABASE_URL, echo=False)

    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Register the models on Base.metadata before create_all.
    from shortlink import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
