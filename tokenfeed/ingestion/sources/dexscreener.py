import time
from typing import Any, List, Mapping, Optional, Set
from urllib.parse import quote

from tokenfeed.core.config import get_settings
from tokenfeed.core.logging_config import get_logger
from tokenfeed.ingestion.normalize import (
    age_millis,
    dig,
    is_graduated,
    parse_millis,
    parse_number,
    progress_percent,
)
from tokenfeed.schemas.listing import CanonicalListing
from tokenfeed.services.drift_detection import detect_drift

logger = get_logger("etl_dexscreener")

SOURCE = "dexscreener"
VENUES = ("pumpfun", "raydium")
GRADUATED_VENUE = "raydium"
PAIR_KEYS = {"chainId", "dexId", "baseToken", "priceUsd", "fdv", "pairAddress"}


def select_pairs(payload: Any, chain: str) -> List[Mapping[str, Any]]:
    """Pairs on the target chain that trade on a tracked venue."""
    pairs = dig(payload, "pairs")
    if not isinstance(pairs, list):
        return []
    return [
        p for p in pairs
        if isinstance(p, Mapping) and p.get("chainId") == chain and p.get("dexId") in VENUES
    ]


def normalize_pair(pair: Mapping[str, Any], now_ms: int, chain: str = "solana") -> CanonicalListing:
    created = parse_millis(pair.get("pairCreatedAt"))
    mcap = parse_number(pair.get("fdv"))
    dex_id = pair.get("dexId") or ""

    return CanonicalListing(
        symbol=dig(pair, "baseToken", "symbol"),
        name=dig(pair, "baseToken", "name"),
        address=dig(pair, "baseToken", "address") or "",
        price=parse_number(pair.get("priceUsd")),
        market_cap=mcap,
        progress_percent=progress_percent(mcap),
        graduated=is_graduated(dex_id == GRADUATED_VENUE, mcap),
        age_millis=age_millis(created, now_ms),
        created_at_millis=created if created is not None else now_ms,
        volume_24h=parse_number(dig(pair, "volume", "h24")),
        liquidity_usd=parse_number(dig(pair, "liquidity", "usd")),
        change_24h_percent=parse_number(dig(pair, "priceChange", "h24")),
        source_venue=dex_id,
        source=SOURCE,
        canonical_url=f"https://dexscreener.com/{chain}/{pair.get('pairAddress') or ''}",
        image_url=dig(pair, "info", "imageUrl") or None,
    )


def boosted_addresses(payload: Any, chain: str, limit: int) -> List[str]:
    if not isinstance(payload, list):
        return []
    addresses = [
        t.get("tokenAddress") for t in payload
        if isinstance(t, Mapping) and t.get("chainId") == chain and t.get("tokenAddress")
    ]
    return addresses[:limit]


def _append_unique(results: List[CanonicalListing], seen: Set[str], listing: CanonicalListing):
    # Empty addresses are never merged with each other
    if listing.address:
        if listing.address in seen:
            return
        seen.add(listing.address)
    results.append(listing)


def _collect(payload: Any, chain: str, now_ms: int, results: List[CanonicalListing], seen: Set[str]) -> int:
    pairs = select_pairs(payload, chain)
    if pairs:
        detect_drift(pairs[0], PAIR_KEYS, SOURCE)
    before = len(results)
    for p in pairs:
        try:
            listing = normalize_pair(p, now_ms, chain)
        except Exception as e:
            logger.warning("conversion_error", source=SOURCE, pair=p.get("pairAddress", "unknown"), error=str(e))
            continue
        _append_unique(results, seen, listing)
    return len(results) - before



async def fetch_data(client, now_ms: Optional[int] = None) -> List[CanonicalListing]:
    """
    Boosted tokens first (discovery call + detail call), then keyword searches.
    Each sub-request fails on its own; the adapter only raises if all of them did.
    """
    settings = get_settings()
    base = settings.DEXSCREENER_BASE_URL.rstrip("/")
    chain = settings.TARGET_CHAIN
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)

    results: List[CanonicalListing] = []
    seen: Set[str] = set()
    failures: List[Exception] = []

    try:
        boosts = await client.fetch_json(f"{base}/token-boosts/top/v1")
        addresses = boosted_addresses(boosts, chain, settings.DEXSCREENER_BOOST_LIMIT)
        if addresses:
            token_data = await client.fetch_json(f"{base}/latest/dex/tokens/{','.join(addresses)}")
            added = _collect(token_data, chain, now_ms, results, seen)
            logger.info("boosts_fetched", source=SOURCE, tokens=len(addresses), records=added)
    except Exception as e:
        failures.append(e)
        logger.warning("boosts_error", source=SOURCE, error=str(e))

    # Searches only skip addresses collected earlier in this run
    for term in settings.DEXSCREENER_SEARCH_TERMS:
        try:
            data = await client.fetch_json(f"{base}/latest/dex/search?q={quote(term)}")
            added = _collect(data, chain, now_ms, results, seen)
            logger.info("search_fetched", source=SOURCE, query=term, records=added)
        except Exception as e:
            failures.append(e)
            logger.warning("search_error", source=SOURCE, query=term, error=str(e))

    if failures and len(failures) == 1 + len(settings.DEXSCREENER_SEARCH_TERMS):
        raise failures[-1]
    return results
