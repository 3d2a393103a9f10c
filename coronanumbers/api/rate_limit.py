"""Rate limiting helpers shared by every collection worker."""
from __future__ import annotations

import threading
import time
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

__all__ = ["TokenBucket", "parse_retry_after"]


class TokenBucket:
    """Thread-safe token bucket.

    One bucket is shared by all workers so the upstream quota applies to the
    whole run. ``rate_per_sec`` controls the sustained rate while ``burst``
    allows short spikes before callers start waiting.
    """

    def __init__(
        self,
        rate_per_sec: float,
        *,
        burst: float = 1.0,
        sleep_fn: Callable[[float], None] = time.sleep,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate = max(0.0, float(rate_per_sec))
        self.capacity = max(float(burst), 1.0)
        self.tokens = self.capacity
        self.now_fn = now_fn
        self.sleep_fn = sleep_fn
        self.last = now_fn()
        self.lock = threading.Lock()

    def _refill(self) -> None:
        now = self.now_fn()
        delta = max(0.0, now - self.last)
        self.last = now
        if self.rate <= 0.0:
            self.tokens = self.capacity
            return
        self.tokens = min(self.capacity, self.tokens + delta * self.rate)

    def acquire(self) -> float:
        """Take one token, sleeping when the bucket is empty.

        Returns the time waited in seconds; zero means no wait. A rate of zero
        disables limiting.
        """

        with self.lock:
            self._refill()
            if self.rate <= 0.0 or self.tokens >= 1.0:
                self.tokens = max(0.0, self.tokens - 1.0)
                return 0.0
            wait_s = (1.0 - self.tokens) / self.rate
            # Reserve the token now so concurrent callers queue behind us.
            self.tokens -= 1.0
        self.sleep_fn(wait_s)
        return wait_s


def parse_retry_after(header: Optional[str], *, now_fn: Callable[[], float] = time.time) -> Optional[float]:
    """Parse a ``Retry-After`` header into seconds, if possible."""

    if not header:
        return None
    value = header.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return seconds if seconds >= 0 else None
    # HTTP-date form
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, when.timestamp() - now_fn())
