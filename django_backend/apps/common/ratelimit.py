import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from django.conf import settings
from django.core.cache import caches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - now))

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class FixedWindowRateLimiter:
    """
    Counts requests per identifier in fixed windows on the Django cache.

    The window start is part of the cache key and the key expires with the
    window, so stale counters disappear without a cleanup job. add() and
    incr() are atomic on the Redis and locmem backends, which keeps the
    counter correct under concurrent requests.
    """

    def __init__(self, scope: str, max_requests: int, window_seconds: int,
                 cache_alias: str = "default", clock: Callable[[], float] = time.time):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.cache_alias = cache_alias
        self.clock = clock

    @property
    def cache(self):
        return caches[self.cache_alias]

    def _window(self, now: float):
        start = int(now // self.window_seconds) * self.window_seconds
        return start, start + self.window_seconds

    def check(self, identifier: str) -> RateLimitResult:
        now = self.clock()
        start, reset_at = self._window(now)
        key = f"ratelimit:{self.scope}:{identifier}:{start}"
        # expire slightly after the window so a late incr never recreates a dead key
        ttl = max(1, math.ceil(reset_at - now)) + 1

        if self.cache.add(key, 1, timeout=ttl):
            count = 1
        else:
            try:
                count = self.cache.incr(key)
            except ValueError:
                # key expired between add() and incr()
                self.cache.add(key, 1, timeout=ttl)
                count = 1

        allowed = count <= self.max_requests
        if not allowed:
            logger.info(f"Rate limit exceeded for {self.scope}:{identifier} ({count}/{self.max_requests})")
        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=float(reset_at),
        )


def ai_suggestions_rate_limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        scope="ai-suggestions",
        max_requests=getattr(settings, "AI_SUGGESTIONS_RATE_LIMIT", 10),
        window_seconds=getattr(settings, "AI_SUGGESTIONS_RATE_WINDOW_SECONDS", 60),
    )
