"""
Handles pull requests for the aggregated token listings and per-source statistics.
Serves as the gateway for the frontend dashboard; all reads go through the AggregateCache.
"""
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from tokenfeed.core.exceptions import CacheUnavailableError
from tokenfeed.core.logging_config import get_logger
from tokenfeed.schemas.data import PumpResponse, SourceStatsResponse
from tokenfeed.services.cache import AggregateCache

logger = get_logger("api")

router = APIRouter()


def get_cache(request: Request) -> AggregateCache:
    return request.app.state.cache


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/api/pump", response_model=PumpResponse)
async def get_pump(
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, description="Page size, all listings when omitted"),
    cache: AggregateCache = Depends(get_cache),
):
    try:
        snapshot = await cache.get()
    except CacheUnavailableError as e:
        logger.error("pull_failed", error=str(e))
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    listings = snapshot.listings[offset:]
    if limit is not None:
        listings = listings[:limit]

    return PumpResponse(
        count=len(listings),
        timestamp=_now_ms(),
        fetchedAt=snapshot.fetched_at_millis,
        coins=[listing.model_dump(by_alias=True) for listing in listings],
    )


@router.get("/stats")
async def get_stats(cache: AggregateCache = Depends(get_cache)):
    """
    Returns per-source results of the last refresh.
    """
    snapshot = cache.snapshot
    if snapshot is None:
        return {"fetched_at": None, "source_stats": []}

    stats = [
        SourceStatsResponse(
            source_name=s.source,
            status=s.status,
            records_processed=s.records,
            duration_ms=s.duration_ms,
            error_log=s.error,
        )
        for s in snapshot.sources
    ]
    return {"fetched_at": snapshot.fetched_at_millis, "source_stats": stats}


@router.post("/refresh")
async def refresh(cache: AggregateCache = Depends(get_cache)):
    """
    Manually forces a refresh, bypassing the freshness window.
    """
    try:
        snapshot = await cache.force_refresh()
    except CacheUnavailableError as e:
        return {"status": "failed", "error": str(e)}
    return {"status": "refreshed", "count": len(snapshot.listings), "fetchedAt": snapshot.fetched_at_millis}
