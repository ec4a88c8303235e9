import asyncio
import contextlib
from typing import Awaitable, Callable, List, Optional

from tokenfeed.core.exceptions import CacheUnavailableError
from tokenfeed.core.logging_config import get_logger
from tokenfeed.schemas.listing import AggregateSnapshot
from tokenfeed.services.cache import AggregateCache

logger = get_logger("refresh_scheduler")

RefreshHook = Callable[[AggregateSnapshot], Awaitable[None]]


class RefreshScheduler:
    """
    Forces a cache refresh every `interval_seconds`, independent of read traffic,
    and hands each new snapshot to the registered hooks.
    """

    def __init__(self, cache: AggregateCache, interval_seconds: float):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._hooks: List[RefreshHook] = []
        self._task: Optional[asyncio.Task] = None

    def on_refresh(self, hook: RefreshHook):
        self._hooks.append(hook)
        return hook

    async def tick(self) -> Optional[AggregateSnapshot]:
        """Returns the new snapshot, or None when the refresh produced none."""
        previous = self.cache.snapshot
        try:
            snapshot = await self.cache.force_refresh()
        except CacheUnavailableError as e:
            logger.error("scheduled_refresh_failed", error=str(e))
            return None

        # A failed refresh hands back the cached snapshot; subscribers already have it
        if snapshot is previous:
            logger.info("scheduled_refresh_unchanged", fetched_at=snapshot.fetched_at_millis)
            return None

        for hook in self._hooks:
            try:
                await hook(snapshot)
            except Exception as e:
                logger.error("refresh_hook_failed", hook=getattr(hook, "__qualname__", repr(hook)), error=str(e))
        return snapshot

    async def run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.tick()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if not self.running:
            self._task = asyncio.create_task(self.run())
            logger.info("scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("scheduler_stopped")
