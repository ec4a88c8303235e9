import asyncio

import pytest

from conftest import make_listing, make_snapshot
from tokenfeed.core.exceptions import CacheUnavailableError
from tokenfeed.services.cache import AggregateCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingRefresh:
    def __init__(self, listings=(), delay=0.0):
        self.calls = 0
        self.listings = listings
        self.delay = delay
        self.fail = False

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("providers down")
        return make_snapshot(self.calls, *self.listings)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_cold_start_refreshes(clock):
    refresh = CountingRefresh([make_listing("A", 1)])
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)
    assert cache.snapshot is None

    snapshot = await cache.get()
    assert refresh.calls == 1
    assert [l.address for l in snapshot.listings] == ["A"]
    assert cache.snapshot is snapshot


@pytest.mark.asyncio
async def test_reads_within_window_share_snapshot(clock):
    refresh = CountingRefresh()
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)

    first = await cache.get()
    clock.now += 4.9
    second = await cache.get()

    assert second is first
    assert refresh.calls == 1


@pytest.mark.asyncio
async def test_expired_window_refreshes_once(clock):
    refresh = CountingRefresh()
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)

    first = await cache.get()
    clock.now += 5
    second = await cache.get()
    third = await cache.get()

    assert refresh.calls == 2
    assert second.fetched_at_millis > first.fetched_at_millis
    assert third is second


@pytest.mark.asyncio
async def test_empty_snapshot_counts_as_fresh(clock):
    refresh = CountingRefresh(listings=())
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)

    await cache.get()
    snapshot = await cache.get()

    assert snapshot.listings == ()
    assert refresh.calls == 1


@pytest.mark.asyncio
async def test_force_refresh_ignores_window(clock):
    refresh = CountingRefresh()
    cache = AggregateCache(refresh, ttl_seconds=60, clock=clock)

    await cache.get()
    forced = await cache.force_refresh()

    assert refresh.calls == 2
    assert cache.snapshot is forced


@pytest.mark.asyncio
async def test_failed_refresh_keeps_prior_snapshot(clock):
    refresh = CountingRefresh([make_listing("A", 1)])
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)
    prior = await cache.get()

    refresh.fail = True
    clock.now += 10
    assert await cache.get() is prior
    assert await cache.force_refresh() is prior
    assert not cache.is_fresh()


@pytest.mark.asyncio
async def test_cold_start_failure_raises(clock):
    refresh = CountingRefresh()
    refresh.fail = True
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)

    with pytest.raises(CacheUnavailableError):
        await cache.get()
    assert cache.snapshot is None


@pytest.mark.asyncio
async def test_concurrent_stale_readers_share_one_refresh(clock):
    refresh = CountingRefresh(delay=0.01)
    cache = AggregateCache(refresh, ttl_seconds=5, clock=clock)

    snapshots = await asyncio.gather(*(cache.get() for _ in range(5)))

    assert refresh.calls == 1
    assert all(s is snapshots[0] for s in snapshots)
