"""Client for the upstream historical statistics API."""

from .bulk import BulkTimelines
from .client import ApiClient, FetchResult
from .http import (
    FetchError,
    NetworkError,
    ParseError,
    RateLimitedError,
    UpstreamRejectedError,
)
from .rate_limit import TokenBucket, parse_retry_after

__all__ = [
    "ApiClient",
    "BulkTimelines",
    "FetchError",
    "FetchResult",
    "NetworkError",
    "ParseError",
    "RateLimitedError",
    "TokenBucket",
    "UpstreamRejectedError",
    "parse_retry_after",
]
