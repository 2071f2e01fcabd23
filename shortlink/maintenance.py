"""Expiry sweep for short URL records.

Expired records are already invisible to redirects; the sweep physically
removes them from the store and evicts their cache entries.

Flow Diagram — sweep()
======================
::
    ┌──────────────────────┐
    │ store.delete_expired │  DELETE ... RETURNING code
    └──────────┬───────────┘
               ▼
    ┌──────────────────────┐
    │ cache.invalidate_many│  best effort
    └──────────┬───────────┘
               ▼
         removed count

How to Use
===========
**Periodic loop (started by the service container)**::
    maintenance = Maintenance(store, cache, interval_seconds=300)
    maintenance.start()
    ...
    await maintenance.stop()

**One-off sweep from the command line**::
    python -m shortlink.maintenance

Key Behaviours
===============
- Sweeping is idempotent: a second sweep with nothing newly expired removes 0.
- A failed loop iteration is logged and the loop keeps running.
- ``interval_seconds == 0`` disables the loop; ``sweep`` still works on demand.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable

from prometheus_client import Counter

from shortlink.cache import URLCache
from shortlink.schemas import utcnow
from shortlink.store import URLStore

__all__ = ["Maintenance", "run"]

logger = logging.getLogger(__name__)

SWEEP_RUNS_TOTAL = Counter(
    "shortlink_sweep_runs_total",
    "Expiry sweeps executed",
)
SWEEP_REMOVED_TOTAL = Counter(
    "shortlink_sweep_removed_total",
    "Expired records removed by sweeps",
)


class Maintenance:
    def __init__(
        self,
        store: URLStore,
        cache: URLCache,
        interval_seconds: float = 300,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: datetime.datetime | None = None) -> int:
        """Remove every record expired at ``now`` and return how many were removed."""
        as_of = now or self._clock()
        removed = await self._store.delete_expired(as_of)
        if removed:
            await self._cache.invalidate_many(removed)
        SWEEP_RUNS_TOTAL.inc()
        SWEEP_REMOVED_TOTAL.inc(len(removed))
        logger.info(f"Expiry sweep removed {len(removed)} record(s)", extra={"as_of": as_of.isoformat()})
        return len(removed)

    def start(self) -> None:
        if self._interval_seconds <= 0:
            logger.info("Periodic expiry sweep disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="expiry-sweep")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self.sweep()
            except Exception as exc:
                logger.exception(f"Expiry sweep failed: {exc}")


async def run() -> int:
    """Run one sweep against the configured database and Redis."""
    # Imported here to avoid a cycle: the container imports this module.
    from shortlink.dependencies import ServiceManager

    manager = ServiceManager(background_tasks=False)
    await manager.initialize()
    try:
        return await manager.maintenance.sweep()
    finally:
        await manager.cleanup()


if __name__ == "__main__":
    removed = asyncio.run(run())
    print(f"Removed {removed} expired record(s)")
