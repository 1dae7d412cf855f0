"""
kcbot.engine.rate_limit — Sliding-window rate limiter
======================================================

In-memory, per-key request log.  Three independent instances exist per
process (chat commands, /summary, HTTP API); they are built once by
:class:`RateLimiterRegistry` and handed to whoever needs them.

State lives for the process lifetime and resets on restart.  This is
advisory anti-abuse, not a security boundary.  For multi-instance
deployments the same interface would need a shared counter store.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable
from threading import Lock

from kcbot.config import RateLimitConfig, RateLimitSpec

logger = logging.getLogger(__name__)


class RateLimiter:
    """At most ``max_requests`` accepted calls per key within ``window_seconds``.

    Rejected calls are not recorded.  Thread-safe.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = Lock()
        # key → ascending list of accepted-request timestamps (seconds)
        self._requests: dict[str, list[float]] = defaultdict(list)

    @classmethod
    def from_spec(cls, spec: RateLimitSpec, **kwargs) -> RateLimiter:
        return cls(spec.max_requests, spec.window_seconds, **kwargs)

    def _live(self, key: str, now: float) -> list[float]:
        cutoff = now - self.window_seconds
        stamps = [t for t in self._requests.get(key, ()) if t > cutoff]
        if stamps:
            self._requests[key] = stamps
        else:
            self._requests.pop(key, None)
        return stamps

    def is_rate_limited(self, key: str) -> bool:
        """Return True if *key* is over the limit; otherwise record the call."""
        now = self._clock()
        with self._lock:
            stamps = self._live(key, now)
            if len(stamps) >= self.max_requests:
                return True
            self._requests[key].append(now)
            return False

    def get_remaining_requests(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            return max(0, self.max_requests - len(self._live(key, now)))

    def get_reset_time(self, key: str) -> int:
        """Milliseconds until the oldest live request leaves the window."""
        now = self._clock()
        with self._lock:
            stamps = self._requests.get(key)
            if not stamps:
                return 0
            remaining = self.window_seconds - (now - stamps[0])
        return max(0, int(remaining * 1000))

    def get_retry_after(self, key: str) -> int:
        """Whole seconds until *key* may retry (at least 1 while limited)."""
        return max(1, -(-self.get_reset_time(key) // 1000))

    def cleanup(self) -> int:
        """Drop keys whose timestamps have all expired.  Returns keys purged."""
        now = self._clock()
        with self._lock:
            before = len(self._requests)
            for key in list(self._requests):
                self._live(key, now)
            purged = before - len(self._requests)
        if purged:
            logger.debug("Rate limiter purged %d idle keys", purged)
        return purged

    def reset(self, key: str | None = None) -> None:
        """Clear state for *key*, or everything when *key* is None."""
        with self._lock:
            if key is None:
                self._requests.clear()
            else:
                self._requests.pop(key, None)

    def __len__(self) -> int:
        return len(self._requests)


class RateLimiterRegistry:
    """The per-concern limiter instances for one process.

    Each limiter keeps its own state; being limited on one has no effect
    on the others.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config or RateLimitConfig()
        self.commands = RateLimiter.from_spec(config.commands, clock=clock)
        self.summary = RateLimiter.from_spec(config.summary, clock=clock)
        self.api = RateLimiter.from_spec(config.api, clock=clock)

    def all(self) -> tuple[RateLimiter, ...]:
        return (self.commands, self.summary, self.api)

    def cleanup_all(self) -> int:
        return sum(limiter.cleanup() for limiter in self.all())
