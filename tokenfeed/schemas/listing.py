"""
Defines the canonical listing shape shared by every provider adapter.
DexScreener, GeckoTerminal and Pump.fun records are all normalized into
CanonicalListing before they reach the merge engine or the cache.
"""
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

GRADUATION_MARKET_CAP = 69000.0
PLACEHOLDER = "???"


class CanonicalListing(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str = Field(PLACEHOLDER, description="Ticker symbol, e.g. BONK")
    name: str = Field(PLACEHOLDER, description="Display name")
    address: str = Field("", description="Token (or pool) address, used as the dedup key")
    price: float = Field(0.0, description="Price in USD")
    market_cap: float = Field(0.0, alias="marketCap")
    progress_percent: float = Field(0.0, alias="progressPercent", ge=0, le=100)
    graduated: bool = False
    age_millis: Optional[int] = Field(None, alias="ageMillis", description="None when creation time is unknown")
    created_at_millis: int = Field(..., alias="createdAtMillis")
    volume_24h: float = Field(0.0, alias="volume24h")
    liquidity_usd: float = Field(0.0, alias="liquidityUsd")
    change_24h_percent: float = Field(0.0, alias="change24hPercent")
    source_venue: str = Field(..., alias="sourceVenue", description="e.g. pumpfun, raydium")
    source: str = Field(..., description="Adapter that produced the record")
    canonical_url: str = Field(..., alias="canonicalUrl")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    reply_count: int = Field(0, alias="replyCount")

    @field_validator('symbol', 'name', mode='before')
    @classmethod
    def default_placeholder(cls, v):
        if not v or not isinstance(v, str):
            return PLACEHOLDER
        return v

    @field_validator('address', mode='before')
    @classmethod
    def coerce_address(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator('image_url', mode='before')
    @classmethod
    def coerce_image_url(cls, v):
        return v if isinstance(v, str) and v else None


class SourceStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    status: str = Field(..., description="success or failure")
    records: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


class AggregateSnapshot(BaseModel):
    """One immutable result of a merge cycle."""

    model_config = ConfigDict(frozen=True)

    listings: Tuple[CanonicalListing, ...] = ()
    fetched_at_millis: int
    sources: Tuple[SourceStats, ...] = ()

    def coins(self):
        return [listing.model_dump(by_alias=True) for listing in self.listings]
