"""Token bucket admission control."""

import threading
import time
from typing import Callable, Optional

# One page load fetches HTML, CSS and JS plus some margin.
BURST_MULTIPLIER = 4


class TokenBucket:
    """Global token bucket that admits one request per available token.

    Tokens refill lazily at ``rate`` per second whenever ``allow`` is called
    and never exceed ``burst``. The bucket starts full. Refill and consume
    happen under a single lock so concurrent callers never observe a stale
    token count.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self._rate = float(rate)
        self._burst = int(burst)
        self._now_provider = time_provider or time.monotonic_ns
        self._lock = threading.Lock()
        self._tokens = float(self._burst)
        self._last_refill_ns = self._now_provider()

    @classmethod
    def for_events_per_second(
        cls,
        events_per_second: int,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> "TokenBucket":
        """Build a bucket refilling ``events_per_second`` with a 4x burst."""
        return cls(
            events_per_second,
            events_per_second * BURST_MULTIPLIER,
            time_provider=time_provider,
        )

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def burst(self) -> int:
        return self._burst

    def allow(self) -> bool:
        """Refill from elapsed time, then take one token if available."""
        with self._lock:
            now_ns = self._now_provider()
            elapsed_ns = now_ns - self._last_refill_ns
            if elapsed_ns > 0:
                refill = elapsed_ns / 1_000_000_000 * self._rate
                self._tokens = min(float(self._burst), self._tokens + refill)
                self._last_refill_ns = now_ns
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False
