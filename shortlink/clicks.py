"""Asynchronous click accounting.

Redirects hand clicks to ``ClickAccountant.record`` and return immediately;
a small pool of worker tasks drains a bounded in-process queue and applies
each click to the store with one atomic increment.

Click Flow Diagram
==================
::
    ┌─────────────┐
    │ resolve()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐   queue full
    │ put_nowait  ├──────────────► dropped (warning + counter)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ worker N    │
    │ (asyncio)   │
    └──────┬──────┘
           ▼
    ┌──────────────────┐  StoreUnavailableError
    │ increment_click  ├───────────────────────► sleep + retry (max_retries)
    └──────┬───────────┘
           │  URLNotFoundError ──► dropped (link deleted meanwhile)
           ▼
        applied

Key Behaviours
===============
- ``record`` never awaits storage and never raises.
- Each recorded click produces exactly one increment attempt; clicks are not
  coalesced, so N concurrent records add N to the counter.
- Workers survive every per-click failure.
- ``stop`` drains the queue before cancelling the workers.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable

from prometheus_client import Counter, Gauge

from shortlink.config import Settings
from shortlink.exceptions import StoreUnavailableError, URLNotFoundError
from shortlink.schemas import utcnow
from shortlink.store import URLStore

__all__ = ["ClickAccountant"]

logger = logging.getLogger(__name__)

CLICKS_RECORDED_TOTAL = Counter(
    "shortlink_clicks_recorded_total",
    "Clicks applied to the store",
)
CLICKS_DROPPED_TOTAL = Counter(
    "shortlink_clicks_dropped_total",
    "Clicks that were never applied",
    ["reason"],
)
CLICK_QUEUE_DEPTH = Gauge(
    "shortlink_click_queue_depth",
    "Clicks waiting to be applied",
)


class ClickAccountant:
    """Bounded queue plus worker pool applying click increments."""

    def __init__(
        self,
        store: URLStore,
        workers: int = 4,
        queue_size: int = 10000,
        max_retries: int = 3,
        retry_delay_seconds: float = 0.1,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._workers = workers
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds
        self._clock = clock
        self._queue: asyncio.Queue[tuple[str, datetime.datetime]] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls, store: URLStore, settings: Settings, clock: Callable[[], datetime.datetime] = utcnow
    ) -> "ClickAccountant":
        return cls(
            store,
            workers=settings.CLICK_WORKERS,
            queue_size=settings.CLICK_QUEUE_SIZE,
            max_retries=settings.CLICK_MAX_RETRIES,
            retry_delay_seconds=settings.CLICK_RETRY_DELAY_SECONDS,
            clock=clock,
        )

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def record(self, code: str) -> None:
        """Queue one click for ``code``; drops it with a warning when the queue is full."""
        try:
            self._queue.put_nowait((code, self._clock()))
        except asyncio.QueueFull:
            CLICKS_DROPPED_TOTAL.labels(reason="queue_full").inc()
            logger.warning(f"Click queue full, dropping click for {code}")
            return
        CLICK_QUEUE_DEPTH.set(self._queue.qsize())

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"click-worker-{index}") for index in range(self._workers)
        ]
        logger.info(f"Started {self._workers} click worker(s)")

    async def join(self) -> None:
        """Wait until every queued click has been applied or dropped."""
        await self._queue.join()

    async def stop(self) -> None:
        if not self._tasks:
            return
        await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Click workers stopped")

    async def _worker(self, index: int) -> None:
        while True:
            code, clicked_at = await self._queue.get()
            try:
                await self._apply(code, clicked_at)
            except Exception as exc:
                CLICKS_DROPPED_TOTAL.labels(reason="error").inc()
                logger.exception(f"Click worker {index} failed to apply click for {code}: {exc}")
            finally:
                self._queue.task_done()
                CLICK_QUEUE_DEPTH.set(self._queue.qsize())

    async def _apply(self, code: str, clicked_at: datetime.datetime) -> None:
        for attempt in range(self._max_retries + 1):
            try:
                await self._store.increment_click(code, clicked_at)
            except URLNotFoundError:
                CLICKS_DROPPED_TOTAL.labels(reason="not_found").inc()
                logger.info(f"Dropping click for deleted code {code}")
                return
            except StoreUnavailableError as exc:
                if attempt >= self._max_retries:
                    CLICKS_DROPPED_TOTAL.labels(reason="store_unavailable").inc()
                    logger.error(f"Dropping click for {code} after {attempt + 1} attempt(s): {exc}")
                    return
                logger.warning(f"Click increment for {code} failed (attempt {attempt + 1}), retrying: {exc}")
                await asyncio.sleep(self._retry_delay_seconds)
            else:
                CLICKS_RECORDED_TOTAL.inc()
                return
