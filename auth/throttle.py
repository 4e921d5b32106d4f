"""
auth/throttle.py -- Login brute-force protection.

LoginThrottle counts failed password attempts per identifier (the
normalized email) in a fixed window. Once max_attempts failures land in
one window, further attempts for that identifier are refused until the
window resets. A successful login clears the counter, so only failures
count.

Backed by the `limits` library (the same engine slowapi uses for the
per-IP route limits in api/limiter.py) with in-memory storage.

Scope: process-local and best-effort. Counters reset on restart and are
not shared between server instances; N instances behind a load balancer
each allow max_attempts per window. Pass a shared storage (e.g.
limits.storage.RedisStorage) to the constructor to lift that limitation.
"""

from __future__ import annotations

import logging
import time

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger("wayfarer.auth.throttle")

_NAMESPACE = "login-failures"


class LoginThrottle:
    """Fixed-window failure counter keyed by identifier.

    Usage:
        throttle = LoginThrottle(max_attempts=5, window_seconds=900)
        if throttle.is_locked(email): ...
        throttle.record_failure(email)
        throttle.reset(email)
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 900, storage: Storage | None = None) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._item = RateLimitItemPerSecond(max_attempts, window_seconds)
        self._limiter = FixedWindowRateLimiter(storage or MemoryStorage())

    def is_locked(self, identifier: str) -> bool:
        """True once max_attempts failures have been recorded in the current window."""
        return not self._limiter.test(self._item, _NAMESPACE, identifier)

    def record_failure(self, identifier: str) -> None:
        if not self._limiter.hit(self._item, _NAMESPACE, identifier):
            logger.warning("Login throttle engaged for identifier (max %d per %ds)", self.max_attempts, self.window_seconds)

    def reset(self, identifier: str) -> None:
        self._limiter.clear(self._item, _NAMESPACE, identifier)

    def retry_after(self, identifier: str) -> int:
        """Seconds until the current window for identifier resets."""
        stats = self._limiter.get_window_stats(self._item, _NAMESPACE, identifier)
        return max(1, int(stats.reset_time - time.time()))
