"""
Token bucket rate limiting for QuickSight API calls.
"""

import logging
import math
import random
import threading
import time
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)


class TokenBucketRateLimiter:
    """
    Thread-safe token bucket.

    acquire() never rejects a caller; it only delays until a token is
    available. The refill and consume step runs under a lock, sleeping does not.
    """

    def __init__(self,
                 max_tokens: float,
                 refill_rate: float,
                 name: str = 'general',
                 max_jitter_ms: float = 10.0,
                 clock: Optional[Callable[[], float]] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        """
        Initialize the rate limiter.

        Args:
            max_tokens: Burst size; the bucket starts full
            refill_rate: Tokens added per second
            name: Label used in log messages
            max_jitter_ms: Upper bound of the random delay added to each wait
            clock: Monotonic clock in seconds (time.monotonic by default)
            sleep: Sleep function taking seconds (time.sleep by default)
        """
        if max_tokens <= 0 or refill_rate <= 0:
            raise ValueError("max_tokens and refill_rate must be positive")

        self.max_tokens = float(max_tokens)
        self.refill_rate = float(refill_rate)
        self.name = name
        self.max_jitter_ms = max_jitter_ms
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._tokens = float(max_tokens)
        self._last_refill = self._clock()
        self.total_acquired = 0
        self.total_waits = 0

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def _try_consume(self) -> Tuple[bool, float]:
        """Return (acquired, wait_ms) after one refill-and-consume attempt."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                self.total_acquired += 1
                return True, 0.0
            wait_ms = math.ceil((1 - self._tokens) / self.refill_rate * 1000)
            self.total_waits += 1
            return False, float(wait_ms)

    def acquire(self) -> None:
        """Block until a token is available, then consume it."""
        while True:
            acquired, wait_ms = self._try_consume()
            if acquired:
                return
            jitter_ms = random.uniform(0, self.max_jitter_ms)
            logger.debug(
                f"Rate limiter '{self.name}' waiting {wait_ms + jitter_ms:.0f}ms",
                extra={'context': {'limiter': self.name, 'wait_ms': wait_ms}}
            )
            self._sleep((wait_ms + jitter_ms) / 1000.0)


def create_rate_limiters(config) -> Tuple[TokenBucketRateLimiter, TokenBucketRateLimiter]:
    """
    Build the general and permissions buckets from an ExportConfig.

    Permission calls get their own, smaller bucket because QuickSight applies
    stricter quotas to them.
    """
    general = TokenBucketRateLimiter(
        config.general_max_tokens, config.general_refill_rate, name='general'
    )
    permissions = TokenBucketRateLimiter(
        config.permissions_max_tokens, config.permissions_refill_rate, name='permissions'
    )
    return general, permissions
