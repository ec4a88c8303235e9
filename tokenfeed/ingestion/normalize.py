"""
Defensive field extraction shared by the provider adapters.
Providers return arbitrary or absent fields at any time, so nothing here raises.
"""
import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from tokenfeed.schemas.listing import GRADUATION_MARKET_CAP


def dig(payload: Any, *keys: str) -> Any:
    """Nested lookup that tolerates missing keys and non-mapping values."""
    current = payload
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def parse_number(value: Any) -> float:
    """Unparsable or missing input becomes 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_millis(value: Any) -> Optional[int]:
    # Epoch milliseconds; zero, negative and junk mean "unknown"
    number = parse_number(value)
    if number <= 0:
        return None
    return int(number)


def parse_iso_millis(value: Any) -> Optional[int]:
    if not value or not isinstance(value, str):
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


def progress_percent(market_cap: float, threshold: float = GRADUATION_MARKET_CAP) -> float:
    if market_cap <= 0:
        return 0.0
    return min(market_cap / threshold * 100, 100.0)


def is_graduated(terminal_venue: bool, market_cap: float, threshold: float = GRADUATION_MARKET_CAP) -> bool:
    return bool(terminal_venue) or market_cap >= threshold


def age_millis(created_at: Optional[int], now_ms: int) -> Optional[int]:
    if created_at is None:
        return None
    return now_ms - created_at
