"""Link service layer: the operations exposed to HTTP handlers and direct callers.

Architecture Overview
=====================
::
    ┌──────────────────────────────────────────────────────────────┐
    │                        LinkService                           │
    │  create / resolve / info / delete / list / stats             │
    └──────┬───────────────┬──────────────────┬───────────────┬────┘
           ▼               ▼                  ▼               ▼
    ┌─────────────┐ ┌─────────────┐   ┌──────────────┐ ┌─────────────┐
    │CodeAllocator│ │  URLCache   │   │ClickAccountant│ │  URLStore   │
    │ (reserve)   │ │ (best effort│   │ (async queue) │ │ (authority) │
    └─────────────┘ └─────────────┘   └──────────────┘ └─────────────┘

Resolve Flow
============
::
    ┌─────────────┐
    │ resolve(c)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐   HIT
    │ cache.lookup├──────────────┐
    └──────┬──────┘              │
     MISS /│UNAVAILABLE          │
           ▼                     │
    ┌─────────────┐              │
    │ store.get   ├─► NOT_FOUND  │
    └──────┬──────┘              │
           ▼                     ▼
    ┌───────────────────────────────┐   yes
    │ expired at now?               ├──────► cache.invalidate + NOT_FOUND
    └──────┬────────────────────────┘
           ▼ no
    ┌─────────────┐
    │ cache.put   │  (only after a miss)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ record click│  queued, not awaited
    └──────┬──────┘
           ▼
        target

Key Behaviours
===============
- Expired links are never served, whether the copy came from Redis or the store.
- A Redis outage only costs latency: create and resolve keep working.
- Store failures always surface as StoreUnavailableError.
- Delete invalidates the cache even when the store reports nothing to delete.
- ``info`` reports expired records with ``is_expired=True`` instead of 404, so
  "never existed" stays distinguishable from "existed and expired".
- Counters served by ``list`` and ``stats`` come from the store only.
"""

import contextlib
import datetime
import logging
import time
from collections.abc import Callable, Iterator
from urllib.parse import urlparse

import validators
from prometheus_client import Counter, Histogram

from shortlink.allocator import CodeAllocator
from shortlink.cache import URLCache
from shortlink.clicks import ClickAccountant
from shortlink.config import Settings
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.exceptions import CodeTakenError, URLNotFoundError, URLValidationError
from shortlink.schemas import PaginatedURLs, PaginationMeta, URLCreate, URLInfo, URLRecord, URLStats, utcnow
from shortlink.store import URLStore

__all__ = ["LinkService", "validate_target_url"]

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

REQUESTS_TOTAL = Counter(
    "shortlink_requests_total",
    "Link service operations by outcome",
    ["operation", "status"],
)
REQUEST_DURATION = Histogram(
    "shortlink_request_duration_seconds",
    "Time taken by link service operations",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
RESOLVE_REQUESTS_TOTAL = Counter(
    "shortlink_resolve_requests_total",
    "Resolve requests by outcome and cache result",
    ["status", "cache"],
)


def validate_target_url(url: str, strict: bool = True) -> str:
    """Check ``url`` syntax and, in strict mode, require an http(s) scheme and a host."""
    url = url.strip()
    if not validators.url(url, strict_query=False, simple_host=True):
        raise URLValidationError(f"Invalid URL: {url}")
    if strict:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise URLValidationError(f"URL scheme must be http or https: {url}")
        if not parsed.netloc:
            raise URLValidationError(f"URL must include a host: {url}")
    return url


def _status_for(exc: BaseException) -> RequestStatus:
    if isinstance(exc, URLValidationError):
        return RequestStatus.VALIDATION_ERROR
    if isinstance(exc, CodeTakenError):
        return RequestStatus.CONFLICT
    if isinstance(exc, URLNotFoundError):
        return RequestStatus.NOT_FOUND
    return RequestStatus.ERROR


@contextlib.contextmanager
def _observe(operation: str) -> Iterator[None]:
    start_time = time.perf_counter()
    try:
        yield
    except Exception as exc:
        REQUESTS_TOTAL.labels(operation=operation, status=_status_for(exc)).inc()
        raise
    else:
        REQUESTS_TOTAL.labels(operation=operation, status=RequestStatus.SUCCESS).inc()
    finally:
        REQUEST_DURATION.labels(operation=operation).observe(time.perf_counter() - start_time)


class LinkService:
    """Core link operations over the store, cache, allocator and click accountant.

    One instance is built at startup and shared by every request; it holds no
    per-request state.

    Example:
        >>> service = LinkService(store, cache, allocator, accountant, settings)
        >>> record = await service.create(URLCreate(url="https://example.com"))
        >>> (await service.resolve(record.code)).target_url
        'https://example.com'
    """

    def __init__(
        self,
        store: URLStore,
        cache: URLCache,
        allocator: CodeAllocator,
        accountant: ClickAccountant,
        settings: Settings,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._allocator = allocator
        self._accountant = accountant
        self._settings = settings
        self._clock = clock

    @property
    def settings(self) -> Settings:
        return self._settings

    def now(self) -> datetime.datetime:
        return self._clock()

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create(self, request: URLCreate) -> URLRecord:
        """Validate the target, reserve a code and warm the cache.

        Raises:
            URLValidationError: Bad target URL or custom code.
            CodeTakenError: The custom code is already in use.
            AllocationExhaustedError: No free generated code within the attempt budget.
            StoreUnavailableError: The store could not be reached.
        """
        with _observe("create"):
            target_url = validate_target_url(request.url, strict=self._settings.STRICT_URL_VALIDATION)
            expires_at = self._expires_at(request.expiry_hours)

            try:
                record = await self._allocator.allocate(
                    target_url,
                    expires_at=expires_at,
                    custom_code=request.custom_code,
                )
            except CodeTakenError as exc:
                logger.warning(f"Custom code already taken: {exc.short_code}", extra={"operation": "create"})
                raise

            await self._cache.put(record)
            logger.info(
                f"URL created: {record.code}",
                extra={"operation": "create", "short_code": record.code, "custom": request.custom_code is not None},
            )
            return record

    async def resolve(self, code: str) -> URLRecord:
        """Return the live record for ``code`` and queue one click.

        Raises:
            URLNotFoundError: Unknown code, or the link has expired.
            StoreUnavailableError: Cache missed and the store could not be reached.
        """
        cache_status = CacheStatus.MISS
        try:
            with _observe("resolve"):
                cache_status, record = await self._lookup(code)
                if record.is_expired(self._clock()):
                    await self._cache.invalidate(code)
                    logger.info(f"Expired link requested: {code}", extra={"operation": "resolve"})
                    raise URLNotFoundError(code)
                if cache_status is not CacheStatus.HIT:
                    await self._cache.put(record)
                self._accountant.record(code)
        except Exception as exc:
            RESOLVE_REQUESTS_TOTAL.labels(status=_status_for(exc), cache=cache_status).inc()
            raise

        RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache=cache_status).inc()
        logger.debug(f"Resolved {code} ({cache_status})")
        return record

    async def info(self, code: str) -> URLInfo:
        """Describe ``code`` without recording a click; expired records are reported, not hidden."""
        with _observe("info"):
            cache_status, record = await self._lookup(code)
            now = self._clock()
            if cache_status is not CacheStatus.HIT and not record.is_expired(now):
                await self._cache.put(record)
            return URLInfo.from_record(record, self._settings.BASE_URL, now)

    async def delete(self, code: str) -> None:
        """Delete ``code`` from the store and evict it from the cache.

        Raises:
            URLNotFoundError: Nothing was stored under ``code``.
        """
        with _observe("delete"):
            try:
                await self._store.delete(code)
            finally:
                await self._cache.invalidate(code)
            logger.info(f"URL deleted: {code}", extra={"operation": "delete", "short_code": code})

    async def list(self, limit: int | None = None, offset: int = 0) -> PaginatedURLs:
        with _observe("list"):
            limit = self._settings.LIST_DEFAULT_LIMIT if limit is None else limit
            limit = max(1, min(limit, self._settings.LIST_MAX_LIMIT))
            offset = max(0, offset)

            records = await self._store.list_page(limit, offset)
            total = await self._store.count()
            now = self._clock()
            return PaginatedURLs(
                data=[URLInfo.from_record(record, self._settings.BASE_URL, now) for record in records],
                pagination=PaginationMeta.build(total, limit, offset),
            )

    async def stats(self) -> URLStats:
        with _observe("stats"):
            return await self._store.stats(self._clock())

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _lookup(self, code: str) -> tuple[CacheStatus, URLRecord]:
        cache_status, record = await self._cache.lookup(code)
        if record is None:
            record = await self._store.get_by_code(code)
        return cache_status, record

    def _expires_at(self, expiry_hours: int | None) -> datetime.datetime | None:
        hours = expiry_hours or self._settings.DEFAULT_EXPIRY_HOURS
        if not hours:
            return None
        return self._clock() + datetime.timedelta(hours=hours)
