import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from tokenfeed.api.routes import router as api_router
from tokenfeed.api.websocket import SubscriptionHub, router as ws_router
from tokenfeed.core.config import get_settings
from tokenfeed.services.refresh_service import build_cache, build_scheduler

from prometheus_fastapi_instrumentator import Instrumentator
from tokenfeed.core.logging_config import setup_logging, get_logger

# Setup Structured Logging
setup_logging()
logger = get_logger("main")
settings = get_settings()

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

# Instrument Prometheus
Instrumentator().instrument(app).expose(app)

app.state.cache = build_cache(settings)
app.state.hub = SubscriptionHub()
app.state.scheduler = build_scheduler(app.state.cache, settings)
app.state.scheduler.on_refresh(app.state.hub.broadcast)

@app.on_event("startup")
async def startup_event():
    logger.info("startup_event", msg="Warming cache and starting refresh scheduler")
    try:
        await app.state.cache.force_refresh()
    except Exception as e:
        logger.error("warmup_failed", error=str(e))
    app.state.scheduler.start()

@app.on_event("shutdown")
async def shutdown_event():
    await app.state.scheduler.stop()

@app.get("/health")
async def health_check(request: Request):
    start_time = time.time()
    cache = request.app.state.cache
    snapshot = cache.snapshot

    if snapshot is None:
        cache_status = "empty"
        failed = []
    else:
        cache_status = "fresh" if cache.is_fresh() else "stale"
        failed = [s.source for s in snapshot.sources if s.status != "success"]

    latency = (time.time() - start_time) * 1000

    return {
        "status": "ok",
        "cache_status": cache_status,
        "listings": len(snapshot.listings) if snapshot else 0,
        "last_fetch": snapshot.fetched_at_millis if snapshot else None,
        "failed_sources": failed,
        "scheduler_running": request.app.state.scheduler.running,
        "subscribers": len(request.app.state.hub.connections),
        "latency_ms": round(latency, 2)
    }

app.include_router(api_router)
app.include_router(ws_router)

if settings.STATIC_DIR:
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
