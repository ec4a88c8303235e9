import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from conftest import make_listing
from tokenfeed.main import app
from tokenfeed.schemas.listing import SourceStats, AggregateSnapshot
from tokenfeed.services.cache import AggregateCache


def install_cache(refresh):
    cache = AggregateCache(refresh, ttl_seconds=3600)
    app.state.cache = cache
    return cache


@pytest.fixture(autouse=True)
def restore_cache():
    original = app.state.cache
    yield
    app.state.cache = original


@pytest_asyncio.fixture
async def async_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def populated_refresh():
    return AggregateSnapshot(
        listings=(make_listing("X", 100), make_listing("Y", None)),
        fetched_at_millis=1234,
        sources=(
            SourceStats(source="dexscreener", status="success", records=2, duration_ms=15),
            SourceStats(source="pumpfun", status="failure", error="Invalid JSON: <html>"),
        ),
    )


async def broken_refresh():
    raise RuntimeError("every provider is down")


@pytest.mark.asyncio
async def test_get_pump(async_client):
    install_cache(populated_refresh)
    response = await async_client.get("/api/pump")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["count"] == 2
    assert data["fetchedAt"] == 1234
    assert [c["address"] for c in data["coins"]] == ["X", "Y"]
    assert data["coins"][1]["ageMillis"] is None
    assert "marketCap" in data["coins"][0]


@pytest.mark.asyncio
async def test_get_pump_pagination(async_client):
    install_cache(populated_refresh)
    response = await async_client.get("/api/pump", params={"offset": 1, "limit": 1})
    assert [c["address"] for c in response.json()["coins"]] == ["Y"]


@pytest.mark.asyncio
async def test_get_pump_cold_failure(async_client):
    install_cache(broken_refresh)
    response = await async_client.get("/api/pump")

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "every provider is down" in response.json()["error"]


@pytest.mark.asyncio
async def test_stats_and_health(async_client):
    cache = install_cache(populated_refresh)

    response = await async_client.get("/stats")
    assert response.json() == {"fetched_at": None, "source_stats": []}

    await cache.get()
    stats = (await async_client.get("/stats")).json()
    assert stats["fetched_at"] == 1234
    by_name = {s["source_name"]: s for s in stats["source_stats"]}
    assert by_name["pumpfun"]["status"] == "failure"
    assert by_name["dexscreener"]["records_processed"] == 2

    health = (await async_client.get("/health")).json()
    assert health["status"] == "ok"
    assert health["cache_status"] == "fresh"
    assert health["listings"] == 2
    assert health["failed_sources"] == ["pumpfun"]


@pytest.mark.asyncio
async def test_manual_refresh(async_client):
    cache = install_cache(populated_refresh)
    response = await async_client.post("/refresh")
    assert response.json()["status"] == "refreshed"
    assert response.json()["count"] == 2
    assert cache.snapshot is not None


def test_websocket_initial_snapshot_and_rerequest():
    install_cache(populated_refresh)
    client = TestClient(app)

    with client.websocket_connect("/ws") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "initial"
        assert [c["address"] for c in initial["coins"]] == ["X", "Y"]

        ws.send_text("snapshot")
        again = ws.receive_json()
        assert again["type"] == "initial"
        assert len(again["coins"]) == 2


def test_websocket_never_surfaces_cold_failure():
    install_cache(broken_refresh)
    client = TestClient(app)

    with client.websocket_connect("/ws") as ws:
        initial = ws.receive_json()
        assert initial == {"type": "initial", "coins": [], "timestamp": initial["timestamp"]}


def test_websocket_ignores_binary_frames():
    install_cache(populated_refresh)
    client = TestClient(app)

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_bytes(b"\x00")
        ws.send_text("snapshot")

        again = ws.receive_json()
        assert again["type"] == "initial"
        assert [c["address"] for c in again["coins"]] == ["X", "Y"]
