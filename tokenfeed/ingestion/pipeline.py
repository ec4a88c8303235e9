"""
Orchestrates concurrent fetching from DexScreener/GeckoTerminal/Pump.fun and merges the results.
Every adapter runs in parallel; a failing adapter contributes zero records for the cycle
instead of aborting the refresh.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from prometheus_client import Counter, Histogram, Gauge

from tokenfeed.core import config
from tokenfeed.core.logging_config import get_logger
from tokenfeed.ingestion.client import SourceClient
from tokenfeed.ingestion.sources import dexscreener, geckoterminal, pumpfun
from tokenfeed.schemas.listing import AggregateSnapshot, CanonicalListing, SourceStats

logger = get_logger("etl_pipeline")

# --- Metrics ---
SOURCE_RECORDS = Counter('tokenfeed_source_records_total', 'Total records normalized', ['source'])
SOURCE_DURATION = Histogram('tokenfeed_source_duration_seconds', 'Adapter run duration', ['source'])
SOURCE_STATUS = Gauge('tokenfeed_source_status', 'Adapter status (1=Success, 0=Fail)', ['source'])

Fetcher = Callable[[SourceClient], Awaitable[List[CanonicalListing]]]


@dataclass(frozen=True)
class SourceSpec:
    name: str
    fetch: Fetcher
    # Failures of an unreliable source are expected and logged quietly
    unreliable: bool = False


@dataclass(frozen=True)
class SourceResult:
    source: str
    listings: Tuple[CanonicalListing, ...] = ()
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def stats(self) -> SourceStats:
        return SourceStats(
            source=self.source,
            status="success" if self.ok else "failure",
            records=len(self.listings),
            duration_ms=self.duration_ms,
            error=self.error,
        )


# Priority order: first occurrence of an address wins the merge
DEFAULT_SOURCES: Tuple[SourceSpec, ...] = (
    SourceSpec("dexscreener", dexscreener.fetch_data),
    SourceSpec("geckoterminal", geckoterminal.fetch_data),
    SourceSpec("pumpfun", pumpfun.fetch_data, unreliable=True),
)

# --- Fan-out ---

async def run_source(spec: SourceSpec, client: SourceClient) -> SourceResult:
    settings = config.get_settings()
    start_time = time.time()
    logger.info("source_start", source=spec.name)

    try:
        # Chaos Injection
        if spec.name in settings.CHAOS_SOURCES:
            raise RuntimeError(f"CHAOS_MODE_TRIGGERED: Simulated failure of {spec.name}")
        listings = tuple(await spec.fetch(client))
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        log = logger.warning if spec.unreliable else logger.error
        log("source_failure", source=spec.name, error=str(e), duration_ms=duration_ms)
        SOURCE_STATUS.labels(source=spec.name).set(0)
        SOURCE_DURATION.labels(source=spec.name).observe(duration_ms / 1000.0)
        return SourceResult(spec.name, error=str(e) or type(e).__name__, duration_ms=duration_ms)

    duration_ms = int((time.time() - start_time) * 1000)
    logger.info("source_success", source=spec.name, records=len(listings), duration_ms=duration_ms)
    SOURCE_STATUS.labels(source=spec.name).set(1)
    SOURCE_RECORDS.labels(source=spec.name).inc(len(listings))
    SOURCE_DURATION.labels(source=spec.name).observe(duration_ms / 1000.0)
    return SourceResult(spec.name, listings, duration_ms=duration_ms)


async def collect_sources(client: SourceClient, sources: Sequence[SourceSpec] = DEFAULT_SOURCES) -> List[SourceResult]:
    """Runs every adapter concurrently. Results keep the order of `sources`, not completion order."""
    return list(await asyncio.gather(*(run_source(spec, client) for spec in sources)))

# --- Merge ---

def _age_key(listing: CanonicalListing):
    # Unknown age sorts after every known age
    return (listing.age_millis is None, listing.age_millis or 0)


def merge_listings(results: Iterable[SourceResult], cap: int) -> List[CanonicalListing]:
    """
    First-write-wins merge across sources in priority order, newest first, truncated to cap.
    Records with an empty address are never merged.
    """
    seen = set()
    merged: List[CanonicalListing] = []
    for result in results:
        for listing in result.listings:
            if listing.address:
                if listing.address in seen:
                    continue
                seen.add(listing.address)
            merged.append(listing)

    merged.sort(key=_age_key)
    return merged[:max(cap, 0)]


async def run_aggregation(
    client: Optional[SourceClient] = None,
    sources: Sequence[SourceSpec] = DEFAULT_SOURCES,
    cap: Optional[int] = None,
    clock: Callable[[], float] = time.time,
) -> AggregateSnapshot:
    settings = config.get_settings()
    cap = settings.MAX_LISTINGS if cap is None else cap
    logger.info("pipeline_start", sources=[s.name for s in sources])

    if client is None:
        async with SourceClient.from_settings(settings) as owned:
            results = await collect_sources(owned, sources)
    else:
        results = await collect_sources(client, sources)

    listings = merge_listings(results, cap)
    snapshot = AggregateSnapshot(
        listings=tuple(listings),
        fetched_at_millis=int(clock() * 1000),
        sources=tuple(r.stats() for r in results),
    )
    logger.info(
        "pipeline_finish",
        records=len(listings),
        failed_sources=[r.source for r in results if not r.ok],
    )
    return snapshot
