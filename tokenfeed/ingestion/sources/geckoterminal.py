import time
from typing import Any, List, Mapping, Optional, Set

from tokenfeed.core.config import get_settings
from tokenfeed.core.logging_config import get_logger
from tokenfeed.ingestion.normalize import (
    age_millis,
    dig,
    is_graduated,
    parse_iso_millis,
    parse_number,
    progress_percent,
)
from tokenfeed.schemas.listing import CanonicalListing, PLACEHOLDER
from tokenfeed.services.drift_detection import detect_drift

logger = get_logger("etl_geckoterminal")

SOURCE = "geckoterminal"
POOL_KEYS = {"id", "attributes", "relationships"}


def venue_for(dex_id: Any) -> str:
    """Maps a GeckoTerminal dex id onto a tracked venue, or '' when untracked."""
    if not isinstance(dex_id, str):
        return ""
    if "pump" in dex_id:
        return "pumpfun"
    if "raydium" in dex_id:
        return "raydium"
    return ""


def symbol_from_name(name: str) -> str:
    # Pool names look like "BONK / SOL"
    symbol = name.split("/")[0].strip()
    if not symbol:
        symbol = name.split(" ")[0]
    return symbol or PLACEHOLDER


def _last_segment(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.split("_")[-1]


def normalize_pool(pool: Mapping[str, Any], now_ms: int, chain: str = "solana") -> Optional[CanonicalListing]:
    """Returns None for pools on venues we do not track."""
    venue = venue_for(dig(pool, "relationships", "dex", "data", "id"))
    if not venue:
        return None

    attr = pool.get("attributes")
    if not isinstance(attr, Mapping):
        attr = {}
    name = attr.get("name") if isinstance(attr.get("name"), str) else ""
    pool_address = _last_segment(pool.get("id"))
    # Ids look like "solana_<address>"; the base token mint is the cross-source key
    address = _last_segment(dig(pool, "relationships", "base_token", "data", "id")) or pool_address
    created = parse_iso_millis(attr.get("pool_created_at"))
    mcap = parse_number(attr.get("fdv_usd"))

    return CanonicalListing(
        symbol=symbol_from_name(name),
        name=name,
        address=address,
        price=parse_number(attr.get("base_token_price_usd")),
        market_cap=mcap,
        progress_percent=progress_percent(mcap),
        graduated=is_graduated(venue == "raydium", mcap),
        age_millis=age_millis(created, now_ms),
        created_at_millis=created if created is not None else now_ms,
        volume_24h=parse_number(dig(attr, "volume_usd", "h24")),
        liquidity_usd=parse_number(attr.get("reserve_in_usd")),
        change_24h_percent=parse_number(dig(attr, "price_change_percentage", "h24")),
        source_venue=venue,
        source=SOURCE,
        canonical_url=f"https://www.geckoterminal.com/{chain}/pools/{pool_address}",
    )


def normalize_pools(payload: Any, now_ms: int, chain: str = "solana") -> List[CanonicalListing]:
    pools = dig(payload, "data")
    if not isinstance(pools, list):
        return []
    if pools:
        detect_drift(pools[0], POOL_KEYS, SOURCE)
    results = []
    for pool in pools:
        if not isinstance(pool, Mapping):
            continue
        try:
            listing = normalize_pool(pool, now_ms, chain)
        except Exception as e:
            logger.warning("conversion_error", source=SOURCE, pool=pool.get("id", "unknown"), error=str(e))
            continue
        if listing is not None:
            results.append(listing)
    return results


async def fetch_data(client, now_ms: Optional[int] = None) -> List[CanonicalListing]:
    """
    New pools then trending pools for the target network.
    Each endpoint fails on its own; the adapter only raises if both did.
    """
    settings = get_settings()
    base = settings.GECKOTERMINAL_BASE_URL.rstrip("/")
    chain = settings.TARGET_CHAIN
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)

    endpoints = [
        f"{base}/networks/{chain}/new_pools?page=1",
        f"{base}/networks/{chain}/trending_pools",
    ]

    results: List[CanonicalListing] = []
    seen: Set[str] = set()
    failures: List[Exception] = []

    for url in endpoints:
        try:
            data = await client.fetch_json(url)
        except Exception as e:
            failures.append(e)
            logger.warning("fetch_error", source=SOURCE, url=url, error=str(e))
            continue

        for listing in normalize_pools(data, now_ms, chain):
            if listing.address:
                if listing.address in seen:
                    continue
                seen.add(listing.address)
            results.append(listing)

    if len(failures) == len(endpoints):
        raise failures[-1]
    return results
