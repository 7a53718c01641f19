from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from core.settings import SYNC
from services.sync_service import SyncRunResult, SyncService


logger = logging.getLogger("patients.sync.scheduler")

# Store and network calls run here, never on the UI event loop.
_EXECUTOR = ThreadPoolExecutor(max_workers=SYNC.worker_threads, thread_name_prefix="patients-sync")


async def run_blocking(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_EXECUTOR, functools.partial(fn, *args, **kwargs))


def next_delay(interval_sec: float, failures: int, max_backoff_sec: float) -> float:
    """Delay before the next periodic run after ``failures`` failed runs in a row."""
    if failures <= 0:
        return float(interval_sec)
    return float(min(interval_sec * (2 ** failures), max_backoff_sec))


class SyncScheduler:
    """Periodic, network-gated sync runs with exponential backoff.

    ``run_forever`` is meant to be started with ``page.run_task`` (or any
    running loop). Runs themselves execute on the shared pool.
    """

    def __init__(
        self,
        sync_service: SyncService,
        *,
        interval_sec: float = SYNC.interval_sec,
        max_backoff_sec: float = SYNC.max_backoff_sec,
        network_check: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.sync_service = sync_service
        self.interval_sec = interval_sec
        self.max_backoff_sec = max(max_backoff_sec, interval_sec)
        self.network_check = network_check or sync_service.api.is_reachable
        self.failures = 0
        self._stopped = False
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def delay(self) -> float:
        return next_delay(self.interval_sec, self.failures, self.max_backoff_sec)

    async def request_sync_now(self) -> SyncRunResult:
        """Explicit run; ignores the network check and the backoff timer."""
        result = await run_blocking(self.sync_service.run)
        self._track(result)
        return result

    async def run_forever(self) -> None:
        self._stopped = False
        self._wakeup = asyncio.Event()
        logger.info("Sync scheduler started (interval %ss)", self.interval_sec)
        while not self._stopped:
            await self._tick()
            if self._stopped:
                break
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.delay)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
        logger.info("Sync scheduler stopped")

    def stop(self) -> None:
        self._stopped = True
        self.sync_service.cancel()
        if self._wakeup is not None:
            self._wakeup.set()

    async def _tick(self) -> None:
        try:
            online = await run_blocking(self.network_check)
        except Exception:
            logger.exception("Network check failed")
            online = False
        if not online:
            logger.info("Network unavailable, periodic sync skipped")
            return
        try:
            await self.request_sync_now()
        except Exception:
            # run() reports failures through its result; this is a pool fault
            logger.exception("Periodic sync crashed")
            self.failures += 1

    def _track(self, result: SyncRunResult) -> None:
        if result.succeeded:
            self.failures = 0
        else:
            self.failures += 1
            logger.info(
                "Sync run incomplete (%s failed); next periodic run in %ss",
                result.failed,
                self.delay,
            )


__all__ = ["SyncScheduler", "next_delay", "run_blocking"]
