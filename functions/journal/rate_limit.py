"""
Rate limiting (simple in-memory, fixed window per client IP and path).

State lives in the process: it is lost on restart and not shared between
instances. The map is mutated without locking.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fastapi import Depends, Request, Response

from journal.config import Settings, get_settings
from journal.errors import ApiError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float
    first_request: float


@dataclass
class RateLimitDecision:
    limit: int
    count: int
    reset_time: float
    now: float

    @property
    def allowed(self) -> bool:
        return self.count <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.reset_time - self.now))

    def headers(self) -> dict[str, str]:
        reset = datetime.fromtimestamp(self.reset_time, tz=timezone.utc)
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset.isoformat().replace("+00:00", "Z"),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """Counts requests per key inside a fixed window."""

    def __init__(
        self,
        window_seconds: float = 60,
        sweep_interval_seconds: float = 5 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.clock = clock
        self.entries: Dict[str, RateLimitEntry] = {}
        self._last_sweep = clock()

    def hit(self, key: str, limit: int) -> RateLimitDecision:
        now = self.clock()
        if now - self._last_sweep >= self.sweep_interval_seconds:
            self.sweep(now)

        entry = self.entries.get(key)
        if entry is None or now > entry.reset_time:
            entry = RateLimitEntry(
                count=0, reset_time=now + self.window_seconds, first_request=now
            )
            self.entries[key] = entry

        entry.count += 1
        return RateLimitDecision(
            limit=limit, count=entry.count, reset_time=entry.reset_time, now=now
        )

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop entries whose window ended more than a window ago."""
        now = self.clock() if now is None else now
        stale = [
            key
            for key, entry in self.entries.items()
            if now - entry.reset_time > self.window_seconds
        ]
        for key in stale:
            del self.entries[key]
        self._last_sweep = now
        return len(stale)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter:
        return _rate_limiter
    settings = get_settings()
    _rate_limiter = RateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        sweep_interval_seconds=settings.rate_limit_sweep_interval_seconds,
    )
    return _rate_limiter


def _enforce(
    request: Request, response: Response, limiter: RateLimiter, limit: int
) -> None:
    ip = client_ip(request)
    decision = limiter.hit(f"{ip}:{request.url.path}", limit)
    headers = decision.headers()
    # Error handlers copy these onto responses the route never builds.
    request.state.rate_limit_headers = headers
    if not decision.allowed:
        logger.warning(
            "Rate limit exceeded for IP: %s, endpoint: %s", ip, request.url.path
        )
        raise ApiError(
            429,
            "Too Many Requests",
            f"Rate limit exceeded. Please try again in {decision.retry_after} seconds.",
            headers=headers,
            retryAfter=decision.retry_after,
        )
    response.headers.update(headers)


def standard_rate_limit(
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> None:
    _enforce(request, response, limiter, settings.rate_limit_max_requests)


def strict_rate_limit(
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> None:
    _enforce(request, response, limiter, settings.rate_limit_strict_max_requests)
