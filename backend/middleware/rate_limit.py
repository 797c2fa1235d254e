"""
In-memory rate limiting for login, registration, checkout and webhook routes.

Sliding window per (client IP, route) key. State lives in the process, so
each worker enforces its own limit.
"""
import logging
import time
from collections import deque

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window counter: a deque of hit timestamps per key."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}

    def _evict(self, key: str, window_seconds: float, now: float) -> deque[float]:
        """Drop hits older than the window; a key left with no hits is removed."""
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        cutoff = now - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def check(self, key: str, max_requests: int, window_seconds: float) -> bool:
        """Record a hit for `key` and report whether it fits in the window."""
        now = self._clock()
        hits = self._evict(key, window_seconds, now)
        if len(hits) >= max_requests:
            return False
        self._hits.setdefault(key, hits).append(now)
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: float) -> int:
        hits = self._evict(key, window_seconds, self._clock())
        return max(0, max_requests - len(hits))

    def reset(self) -> None:
        self._hits.clear()


# Global rate limiter instance
limiter = RateLimiter()


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/login")
        async def login(..., _rate=Depends(rate_limit(10, 60))):
            ...
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        key = f"{client_ip}:{request.url.path}"

        if not limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {request.url.path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Too many requests. Maximum {max_requests} per {window_seconds} seconds.",
                details={"limit": max_requests, "windowSeconds": window_seconds},
                headers={
                    "Retry-After": str(window_seconds),
                    "X-RateLimit-Limit": str(max_requests),
                    "X-RateLimit-Remaining": str(limiter.remaining(key, max_requests, window_seconds)),
                },
            )

    return _check_rate_limit
