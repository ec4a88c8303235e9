from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    PROJECT_NAME: str = "tokenfeed"
    TARGET_CHAIN: str = "solana"

    # Cache / scheduler
    CACHE_TTL_SECONDS: float = 5.0
    REFRESH_INTERVAL_SECONDS: float = 10.0
    MAX_LISTINGS: int = 150

    # Source client
    FETCH_RETRIES: int = 2
    RETRY_BACKOFF_SECONDS: float = 1.0
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Providers
    DEXSCREENER_BASE_URL: str = "https://api.dexscreener.com"
    GECKOTERMINAL_BASE_URL: str = "https://api.geckoterminal.com/api/v2"
    PUMPFUN_BASE_URL: str = "https://frontend-api.pump.fun"
    DEXSCREENER_BOOST_LIMIT: int = 30
    DEXSCREENER_SEARCH_TERMS: List[str] = ["pump", "new", "meme"]
    PUMPFUN_LIMIT: int = 50

    # Feature Flags
    CHAOS_SOURCES: List[str] = []

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    STATIC_DIR: Optional[str] = None
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

@lru_cache()
def get_settings():
    return Settings()
