import math
from dataclasses import dataclass

from fastapi import Depends
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from starlette.requests import Request

from charmclaim.config import settings
from charmclaim.errors import RateLimited


def get_real_client_ip(request: Request) -> str:
    """Extract real client IP, trusting X-Forwarded-For from our proxy.

    When behind a reverse proxy, the client's real IP is the first entry of
    X-Forwarded-For, or X-Real-IP. Falls back to request.client.host for
    direct connections.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds


class RateLimiter:
    """
    Fixed-window request counter per key.

    Counters live in a ``limits`` storage: ``memory://`` keeps them in process
    and expires finished windows, ``redis://...`` shares them between
    instances. Windows are whole seconds.
    """

    def __init__(self, storage_uri: str = "memory://"):
        self.storage_uri = storage_uri
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.enabled = True

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        window_seconds = max(1, math.ceil(window_ms / 1000))
        item = RateLimitItemPerSecond(max_requests, window_seconds, namespace="claim")

        if not self.enabled:
            return RateLimitResult(allowed=True, remaining=max_requests, reset_at=0)

        allowed = self.strategy.hit(item, key)
        stats = self.strategy.get_window_stats(item, key)
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, stats.remaining),
            reset_at=int(stats.reset_time * 1000),
        )

    def reset(self) -> None:
        """Drop every counter. Used in tests."""
        self.storage.reset()


rate_limiter = RateLimiter(settings.rate_limit_storage_uri)


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


def rate_limit(action: str, limit_setting: str):
    """
    Build a dependency that admits a request for ``action`` or raises RateLimited.

    The limit is read from ``settings.<limit_setting>`` at request time.
    """

    def check_rate_limit(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
        key = f"{get_real_client_ip(request)}:{action}"
        result = limiter.check(key, settings.rate_limit_window_ms, getattr(settings, limit_setting))
        if not result.allowed:
            raise RateLimited(reset_at=result.reset_at)

    return check_rate_limit
