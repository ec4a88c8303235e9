"""
Pump.fun frontend API, the origin venue. Frequently blocked by anti-bot
defenses, so failures here are routine.
"""
import time
from typing import Any, List, Mapping, Optional

from tokenfeed.core.config import get_settings
from tokenfeed.core.logging_config import get_logger
from tokenfeed.ingestion.normalize import age_millis, is_graduated, parse_millis, parse_number, progress_percent
from tokenfeed.schemas.listing import CanonicalListing
from tokenfeed.services.drift_detection import detect_drift

logger = get_logger("etl_pumpfun")

SOURCE = "pumpfun"
COIN_KEYS = {"mint", "symbol", "name", "usd_market_cap", "created_timestamp"}


def normalize_coin(coin: Mapping[str, Any], now_ms: int) -> CanonicalListing:
    created = parse_millis(coin.get("created_timestamp"))
    mcap = parse_number(coin.get("usd_market_cap"))
    mint = coin.get("mint") if isinstance(coin.get("mint"), str) else ""

    return CanonicalListing(
        symbol=coin.get("symbol"),
        name=coin.get("name"),
        address=mint,
        price=parse_number(coin.get("price")),
        market_cap=mcap,
        progress_percent=progress_percent(mcap),
        graduated=is_graduated(bool(coin.get("complete") or coin.get("raydium_pool")), mcap),
        age_millis=age_millis(created, now_ms),
        created_at_millis=created if created is not None else now_ms,
        source_venue="pumpfun",
        source=SOURCE,
        canonical_url=f"https://pump.fun/coin/{mint}",
        image_url=coin.get("image_uri") or None,
        reply_count=int(parse_number(coin.get("reply_count"))),
    )


def normalize_coins(payload: Any, now_ms: int) -> List[CanonicalListing]:
    if not isinstance(payload, list):
        return []
    coins = [c for c in payload if isinstance(c, Mapping)]
    if coins:
        detect_drift(coins[0], COIN_KEYS, SOURCE)

    results = []
    seen = set()
    for coin in coins:
        try:
            listing = normalize_coin(coin, now_ms)
        except Exception as e:
            logger.warning("conversion_error", source=SOURCE, mint=coin.get("mint", "unknown"), error=str(e))
            continue
        if listing.address:
            if listing.address in seen:
                continue
            seen.add(listing.address)
        results.append(listing)
    return results


async def fetch_data(client, now_ms: Optional[int] = None) -> List[CanonicalListing]:
    settings = get_settings()
    base = settings.PUMPFUN_BASE_URL.rstrip("/")
    url = (
        f"{base}/coins?offset=0&limit={settings.PUMPFUN_LIMIT}"
        "&sort=created_timestamp&order=DESC&includeNsfw=false"
    )
    data = await client.fetch_json(url)
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if not isinstance(data, list):
        logger.warning("unexpected_payload", source=SOURCE, payload_type=type(data).__name__)
    return normalize_coins(data, now_ms)
