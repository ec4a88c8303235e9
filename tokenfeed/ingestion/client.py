"""
Single outbound request path shared by every provider adapter.
Wraps httpx with the browser-like headers the providers expect and a fixed-backoff
retry on transport and parse failures.
"""
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from tokenfeed.core.config import get_settings
from tokenfeed.core.exceptions import ParseError, TransportError
from tokenfeed.core.logging_config import get_logger

logger = get_logger("source_client")

# Anti-bot fronts reject requests that do not look like a browser
BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Origin": "https://pump.fun",
    "Referer": "https://pump.fun/",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-site",
}

RETRYABLE = (httpx.TransportError, ParseError)


class SourceClient:
    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        retries: int = 2,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
    ):
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)
        self.retries = retries
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, settings=None) -> "SourceClient":
        settings = settings or get_settings()
        return cls(
            retries=settings.FETCH_RETRIES,
            backoff_seconds=settings.RETRY_BACKOFF_SECONDS,
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()

    async def fetch_json(self, url: str, retries: Optional[int] = None) -> Any:
        """
        GETs url and returns the parsed JSON body.
        Raises TransportError or ParseError once the retry budget is spent.
        """
        retries = self.retries if retries is None else retries
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(retries + 1),
                wait=wait_fixed(self.backoff_seconds),
                retry=retry_if_exception_type(RETRYABLE),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.debug("fetch_retry", url=url, attempt=attempt.retry_state.attempt_number)
                    data = await self._get_json(url)
        except httpx.HTTPError as e:
            # Only transport errors are retried; redirect loops and the like fail at once
            raise TransportError(url, e) from e
        return data

    async def _get_json(self, url: str) -> Any:
        # httpx decodes gzip/deflate/br from Content-Encoding before we read the body
        try:
            response = await self._http.get(url, headers=BROWSER_HEADERS)
        except httpx.DecodingError as e:
            raise ParseError(url, f"undecodable body: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(url, response.text) from e
