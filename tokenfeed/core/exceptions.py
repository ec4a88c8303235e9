"""
Error taxonomy for the aggregation engine.
Fetch errors stay inside an adapter invocation; only CacheUnavailableError
ever reaches a consumer.
"""


class FetchError(Exception):
    """Base for failures of a single outbound request. Carries the offending URL."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url


class TransportError(FetchError):
    def __init__(self, url: str, cause: Exception):
        super().__init__(url, f"transport error: {cause!r}")
        self.cause = cause


class ParseError(FetchError):
    PREVIEW_LENGTH = 100

    def __init__(self, url: str, payload: str):
        self.preview = payload[: self.PREVIEW_LENGTH]
        super().__init__(url, f"Invalid JSON: {self.preview}")


class CacheUnavailableError(Exception):
    """Raised when the cache has never been populated and a refresh failed."""
