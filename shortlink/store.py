"""Durable store for short URL records.

The store is the source of truth: it owns code uniqueness (primary key), the
click counter (atomic UPDATE) and expiry deletion. Every operation opens its own
pooled session, so the store is safe to share across concurrent requests and
across several service instances pointed at the same database.

Operation Overview
==================
::
    insert(record)          INSERT                 CodeTakenError on PK clash
    get_by_code(code)       SELECT                 URLNotFoundError (no expiry filter)
    increment_click(code)   UPDATE count + 1       URLNotFoundError when 0 rows
    delete(code)            DELETE                 URLNotFoundError when 0 rows
    delete_expired(as_of)   DELETE ... RETURNING   removed codes
    list_page(limit, off)   SELECT ORDER BY created_at DESC
    count() / stats(as_of)  aggregate SELECT

Key Behaviours
===============
- Uniqueness is decided by the database, never by a prior existence check,
  so two writers racing for one code cannot both succeed.
- Click increments and last-clicked timestamps are written in one statement;
  last_clicked_at never moves backwards.
- Connectivity failures and pool acquisition timeouts raise
  StoreUnavailableError. They are never swallowed here.
"""

import datetime
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from prometheus_client import Counter
from sqlalchemy import DateTime, case, delete, func, literal, or_, select, text, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.exceptions import CodeTakenError, StoreUnavailableError, URLNotFoundError
from shortlink.models import ShortURL
from shortlink.schemas import URLRecord, URLStats

__all__ = ["URLStore", "handle_database_errors"]

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

DATABASE_READS_TOTAL = Counter(
    "shortlink_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "shortlink_database_writes_total",
    "Total database write operations",
)

UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError)


def handle_database_errors(method: F) -> F:
    """Wrap store methods so connectivity failures surface as StoreUnavailableError.

    Example:
        >>> @handle_database_errors
        ... async def ping(self):
        ...     ...
    """

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except UNAVAILABLE_ERRORS as exc:
            logger.error(f"Store unavailable during {method.__name__}: {exc}")
            raise StoreUnavailableError(f"Store unavailable during {method.__name__}") from exc

    return wrapper  # type: ignore[return-value]


class URLStore:
    """SQLAlchemy-backed store of ``URLRecord`` rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @handle_database_errors
    async def insert(self, record: URLRecord) -> URLRecord:
        """Reserve ``record.code`` and persist the record atomically.

        Raises:
            CodeTakenError: The code already exists (unique constraint violation).
        """
        async with self._session_factory() as session:
            session.add(
                ShortURL(
                    code=record.code,
                    target_url=record.target_url,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                    click_count=record.click_count,
                    last_clicked_at=record.last_clicked_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise CodeTakenError(record.code) from exc
        DATABASE_WRITES_TOTAL.inc()
        return record

    @handle_database_errors
    async def get_by_code(self, code: str) -> URLRecord:
        async with self._session_factory() as session:
            row = await session.get(ShortURL, code)
            DATABASE_READS_TOTAL.inc()
            if row is None:
                raise URLNotFoundError(code)
            return URLRecord.model_validate(row)

    @handle_database_errors
    async def increment_click(self, code: str, clicked_at: datetime.datetime) -> None:
        """Add one click and advance last_clicked_at in a single UPDATE."""
        clicked = literal(clicked_at, DateTime(timezone=True))
        stmt = (
            update(ShortURL)
            .where(ShortURL.code == code)
            .values(
                click_count=ShortURL.click_count + 1,
                last_clicked_at=case(
                    (
                        or_(ShortURL.last_clicked_at.is_(None), ShortURL.last_clicked_at < clicked_at),
                        clicked,
                    ),
                    else_=ShortURL.last_clicked_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        DATABASE_WRITES_TOTAL.inc()
        if result.rowcount == 0:
            raise URLNotFoundError(code)

    @handle_database_errors
    async def delete(self, code: str) -> None:
        stmt = delete(ShortURL).where(ShortURL.code == code).execution_options(synchronize_session=False)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        DATABASE_WRITES_TOTAL.inc()
        if result.rowcount == 0:
            raise URLNotFoundError(code)

    @handle_database_errors
    async def delete_expired(self, as_of: datetime.datetime) -> list[str]:
        """Delete every record with ``expires_at <= as_of`` and return the removed codes."""
        stmt = (
            delete(ShortURL)
            .where(ShortURL.expires_at.is_not(None), ShortURL.expires_at <= as_of)
            .returning(ShortURL.code)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            codes = list(result.scalars().all())
            await session.commit()
        DATABASE_WRITES_TOTAL.inc()
        return codes

    @handle_database_errors
    async def list_page(self, limit: int, offset: int) -> list[URLRecord]:
        stmt = select(ShortURL).order_by(ShortURL.created_at.desc(), ShortURL.code).limit(limit).offset(offset)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            DATABASE_READS_TOTAL.inc()
            return [URLRecord.model_validate(row) for row in result.scalars().all()]

    @handle_database_errors
    async def count(self) -> int:
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(ShortURL))
            DATABASE_READS_TOTAL.inc()
            return int(total or 0)

    @handle_database_errors
    async def stats(self, as_of: datetime.datetime) -> URLStats:
        active = or_(ShortURL.expires_at.is_(None), ShortURL.expires_at > as_of)
        stmt = select(
            func.count(),
            func.coalesce(func.sum(case((active, 1), else_=0)), 0),
            func.coalesce(func.sum(ShortURL.click_count), 0),
        ).select_from(ShortURL)
        async with self._session_factory() as session:
            total, active_count, total_clicks = (await session.execute(stmt)).one()
            DATABASE_READS_TOTAL.inc()
        return URLStats(
            total=int(total),
            active=int(active_count),
            expired=int(total) - int(active_count),
            total_clicks=int(total_clicks),
        )

    @handle_database_errors
    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))
