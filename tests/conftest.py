import pytest
import httpx
from typing import Any, List, Optional, Tuple

from tokenfeed.core import config
from tokenfeed.core.exceptions import TransportError
from tokenfeed.schemas.listing import AggregateSnapshot, CanonicalListing

# pytest-asyncio runs in 'auto' mode (see pyproject.toml), async fixtures need no marker.

NOW_MS = 1_700_000_000_000


def make_listing(address: str, age: Optional[int] = None, source: str = "test", **extra) -> CanonicalListing:
    fields = dict(
        symbol=address or "ANON",
        name=f"Token {address}",
        address=address,
        age_millis=age,
        created_at_millis=NOW_MS - (age or 0),
        source_venue="pumpfun",
        source=source,
        canonical_url=f"https://example.test/{address}",
    )
    fields.update(extra)
    return CanonicalListing(**fields)


def make_snapshot(fetched_at: int = NOW_MS, *listings: CanonicalListing) -> AggregateSnapshot:
    return AggregateSnapshot(listings=tuple(listings), fetched_at_millis=fetched_at)


class FakeSourceClient:
    """
    Stands in for SourceClient in adapter tests.
    Routes are (url fragment, payload-or-exception) pairs, matched in order.
    """

    def __init__(self, routes: List[Tuple[str, Any]]):
        self.routes = routes
        self.calls: List[str] = []

    async def fetch_json(self, url: str, retries: Optional[int] = None) -> Any:
        self.calls.append(url)
        for fragment, value in self.routes:
            if fragment in url:
                if isinstance(value, Exception):
                    raise value
                return value
        raise TransportError(url, httpx.ConnectError("no route"))


@pytest.fixture
def settings(monkeypatch):
    """Process settings; mutate through monkeypatch so changes are undone."""
    s = config.get_settings()
    monkeypatch.setattr(s, "RETRY_BACKOFF_SECONDS", 0.0)
    return s
