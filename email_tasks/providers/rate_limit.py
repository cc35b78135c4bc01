"""Per-provider request throttling."""

from __future__ import annotations

import logging
import threading
import time

logger = logging.getLogger(__name__)


class TokenBucket:
    """Blocking token bucket: ``rate`` tokens/s refilled up to ``capacity``.

    Safe to share between worker threads.
    """

    def __init__(self, rate: float, capacity: float) -> None:
        self.rate = rate
        self.capacity = max(capacity, 1.0)
        self.tokens = self.capacity
        self.last_refill = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        if self.rate <= 0:
            return
        while True:
            with self._lock:
                now = time.monotonic()
                self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.rate)
                self.last_refill = now
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                wait_time = max((1 - self.tokens) / self.rate, 0.001)
            logger.debug("Rate limit reached; waiting %.3fs", wait_time)
            time.sleep(wait_time)


_buckets: dict[str, TokenBucket] = {}
_buckets_lock = threading.Lock()


def get_rate_limiter(provider_name: str, rate: float, capacity: float) -> TokenBucket:
    """Return the process-wide bucket for ``provider_name`` (created on first use)."""
    with _buckets_lock:
        bucket = _buckets.get(provider_name)
        if bucket is None:
            bucket = TokenBucket(rate, capacity)
            _buckets[provider_name] = bucket
        return bucket
