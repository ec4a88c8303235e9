from tokenfeed.core.config import get_settings
from tokenfeed.ingestion.pipeline import run_aggregation
from tokenfeed.services.cache import AggregateCache
from tokenfeed.services.scheduler import RefreshScheduler


def build_cache(settings=None) -> AggregateCache:
    """
    Cache wired to the full aggregation pipeline.
    Each refresh opens its own SourceClient so no connection pool outlives a cycle.
    """
    settings = settings or get_settings()
    return AggregateCache(run_aggregation, ttl_seconds=settings.CACHE_TTL_SECONDS)


def build_scheduler(cache: AggregateCache, settings=None) -> RefreshScheduler:
    settings = settings or get_settings()
    return RefreshScheduler(cache, interval_seconds=settings.REFRESH_INTERVAL_SECONDS)
