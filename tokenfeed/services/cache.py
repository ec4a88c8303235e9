"""
Time-bounded cache holding the current AggregateSnapshot.
It is the single source of truth for both the pull endpoint and the WebSocket push.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional

from tokenfeed.core.exceptions import CacheUnavailableError
from tokenfeed.core.logging_config import get_logger
from tokenfeed.schemas.listing import AggregateSnapshot

logger = get_logger("aggregate_cache")


class AggregateCache:
    def __init__(
        self,
        refresh: Callable[[], Awaitable[AggregateSnapshot]],
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._refresh = refresh
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: Optional[AggregateSnapshot] = None
        self._refreshed_at: Optional[float] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def snapshot(self) -> Optional[AggregateSnapshot]:
        return self._snapshot

    def is_fresh(self) -> bool:
        if self._snapshot is None or self._refreshed_at is None:
            return False
        return self._clock() - self._refreshed_at < self.ttl_seconds

    async def get(self) -> AggregateSnapshot:
        """Cached snapshot while fresh, otherwise a synchronous refresh."""
        if self.is_fresh():
            return self._snapshot
        async with self._lock:
            # A refresh may have completed while we waited for the lock
            if self.is_fresh():
                return self._snapshot
            return await self._refresh_locked()

    async def force_refresh(self) -> AggregateSnapshot:
        async with self._lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> AggregateSnapshot:
        self.refresh_count += 1
        try:
            snapshot = await self._refresh()
        except Exception as e:
            if self._snapshot is None:
                logger.error("refresh_failed_cold", error=str(e))
                raise CacheUnavailableError(f"No data available: {e}") from e
            logger.error("refresh_failed", error=str(e), serving_fetched_at=self._snapshot.fetched_at_millis)
            return self._snapshot

        # Wholesale swap; readers see either the old or the new snapshot
        self._snapshot = snapshot
        self._refreshed_at = self._clock()
        logger.info("cache_refreshed", records=len(snapshot.listings), fetched_at=snapshot.fetched_at_millis)
        return snapshot
