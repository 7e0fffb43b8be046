"""Background task that periodically sweeps the artifact cache."""

import asyncio
from contextlib import suppress

import structlog

from ..models import SweepResult
from .cache import ArtifactCache
from .errors import StorageError

log = structlog.stdlib.get_logger()


class CacheReclaimer:
    """Sleeps for ``interval`` seconds, sweeps, and repeats until stopped."""

    def __init__(self, cache: ArtifactCache, interval: float) -> None:
        if interval <= 0:
            raise ValueError("Sweep interval must be positive")
        self._cache = cache
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.is_running:
            log.warning("Cache reclaimer is already running")
            return
        self._task = asyncio.create_task(self._run(), name="cache-reclaimer")
        log.info("Cache reclaimer started", interval=self.interval)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.info("Cache reclaimer stopped")

    async def run_once(self) -> SweepResult | None:
        """Run one sweep. Storage failures are logged and yield None."""
        try:
            return await self._cache.sweep()
        except StorageError as e:
            log.error("Cache sweep failed", error=e.message, technical_details=e.technical_details)
            return None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                # Keep sweeping for the lifetime of the process
                log.exception("Unexpected error during cache sweep")
