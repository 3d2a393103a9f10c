# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""HTTP helpers and the fetch error taxonomy for the upstream API."""
from __future__ import annotations

import errno
import logging
import socket
import ssl
import threading
from typing import Any, Dict, Mapping, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import (
    ChunkedEncodingError,
    ConnectTimeout,
    ConnectionError as RequestsConnectionError,
    ProxyError,
    ReadTimeout,
    RequestException,
    SSLError as RequestsSSLError,
    Timeout,
)
from urllib3.exceptions import MaxRetryError, NewConnectionError, ProtocolError

from .rate_limit import TokenBucket, parse_retry_after

__all__ = [
    "FetchError",
    "NetworkError",
    "ParseError",
    "RateLimitedError",
    "UpstreamRejectedError",
    "http_get_json",
    "shared_session",
]

LOG = logging.getLogger(__name__)


class FetchError(Exception):
    """Base class for failures while fetching one country."""

    kind = "error"
    transient = False
    attempts = 0

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.status = status

    def __str__(self) -> str:
        return self.message


class NetworkError(FetchError):
    """Connection problems, timeouts and 5xx answers."""

    kind = "network"
    transient = True

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status: int | None = None,
        cause: str | None = None,
    ) -> None:
        super().__init__(message, url=url, status=status)
        self.cause = cause


class RateLimitedError(FetchError):
    """HTTP 429; ``retry_after`` carries the upstream delay hint in seconds."""

    kind = "rate_limited"
    transient = True

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, url=url, status=status)
        self.retry_after = retry_after


class UpstreamRejectedError(FetchError):
    """Non-retryable 4xx answer, e.g. an unknown country."""

    kind = "upstream_rejected"


class ParseError(FetchError):
    """The response body does not have the expected shape."""

    kind = "parse_error"


def _classify_errno(err: OSError) -> str:
    if err.errno in {errno.ETIMEDOUT, errno.EHOSTUNREACH}:
        return "connect_timeout"
    if err.errno == errno.ECONNREFUSED:
        return "conn_refused"
    if err.errno == errno.ECONNRESET:
        return "conn_reset"
    if err.errno == errno.ENETUNREACH:
        return "network_unreachable"
    return "os_error"


def _classify_exception(exc: BaseException) -> str:
    if isinstance(exc, ConnectTimeout):
        return "connect_timeout"
    if isinstance(exc, (ReadTimeout, Timeout)):
        return "read_timeout"
    if isinstance(exc, (RequestsSSLError, ssl.SSLError)):
        return "ssl_error"
    if isinstance(exc, ProxyError):
        return "proxy_error"
    if isinstance(exc, ChunkedEncodingError):
        return "unexpected_eof"
    if isinstance(exc, RequestsConnectionError):
        reason = exc.args[0] if exc.args else None
        if isinstance(reason, (NewConnectionError, MaxRetryError)):
            reason = getattr(reason, "reason", None) or reason
        if isinstance(reason, socket.gaierror):
            return "dns_error"
        if isinstance(reason, NewConnectionError):
            return "connection_error"
        if isinstance(reason, OSError):
            return _classify_errno(reason)
        if isinstance(reason, ProtocolError):
            return "protocol_error"
        return "connection_error"
    if isinstance(exc, OSError):
        return _classify_errno(exc)
    return exc.__class__.__name__.lower()


def _body_preview(response: requests.Response, limit: int = 256) -> str:
    try:
        return response.text[:limit]
    except (UnicodeDecodeError, RequestException):
        return ""


_SESSION: requests.Session | None = None
_SESSION_LOCK = threading.Lock()


def shared_session() -> requests.Session:
    """Return the process-wide session used by all workers."""

    global _SESSION
    with _SESSION_LOCK:
        if _SESSION is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=16, pool_maxsize=32)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            _SESSION = session
        return _SESSION


def http_get_json(
    url: str,
    *,
    session: requests.Session | None = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float | Tuple[float, float] = (5.0, 30.0),
    rate_limiter: TokenBucket | None = None,
) -> Any:
    """Perform one GET request and return the decoded JSON body.

    A single attempt only; retries are the caller's business. Failures are
    raised as :class:`FetchError` subclasses.
    """

    request_headers: Dict[str, str] = {
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
    }
    if headers:
        request_headers.update(headers)

    if rate_limiter is not None:
        waited = rate_limiter.acquire()
        if waited > 0:
            LOG.debug("http.rate_limit_wait | url=%s waited_s=%.3f", url, waited)

    client = session or shared_session()
    try:
        response = client.get(url, headers=request_headers, timeout=timeout)
    except RequestException as exc:
        kind = _classify_exception(exc)
        raise NetworkError(f"GET {url} failed ({kind}): {exc}", url=url, cause=kind) from exc

    status = int(response.status_code)
    try:
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitedError(
                f"GET {url} was rate limited (retry_after={retry_after})",
                url=url,
                retry_after=retry_after,
            )
        if status >= 500:
            raise NetworkError(
                f"GET {url} returned {status}: {_body_preview(response)}",
                url=url,
                status=status,
                cause="http_5xx",
            )
        if status >= 400:
            raise UpstreamRejectedError(
                f"GET {url} returned {status}: {_body_preview(response)}",
                url=url,
                status=status,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"GET {url} returned invalid JSON: {exc}", url=url, status=status) from exc
    finally:
        response.close()
