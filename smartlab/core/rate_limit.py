"""In-memory sliding-window rate limiting, keyed on client address."""

import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, Response

from smartlab.config import settings
from smartlab.core.audit import log_security_event
from smartlab.shared.exceptions import RateLimitedException


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


class SlidingWindowLimiter:
    """
    Allow at most ``limit`` hits per ``window`` seconds for each key.

    Hit instants are kept per key; entries older than the window are dropped
    on every check. State lives in process memory and is lost on restart.
    """

    def __init__(
        self,
        name: str,
        limit: int,
        window: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.limit = limit
        self.window = window
        self.message = message
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = float("-inf")

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        self._sweep(now)
        hits = self._hits.setdefault(key, deque())

        while hits and hits[0] <= now - self.window:
            hits.popleft()

        if len(hits) >= self.limit:
            reset_after = max(1, math.ceil(hits[0] + self.window - now)) if hits else self.window
            return RateLimitResult(False, self.limit, 0, reset_after)

        hits.append(now)
        reset_after = max(1, math.ceil(hits[0] + self.window - now))
        return RateLimitResult(True, self.limit, self.limit - len(hits), reset_after)

    def _sweep(self, now: float) -> None:
        """Forget addresses with no hit inside the window. Runs at most once per window."""
        if now - self._last_sweep < self.window:
            return
        self._last_sweep = now

        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= now - self.window]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        self._hits.clear()
        self._last_sweep = float("-inf")


auth_limiter = SlidingWindowLimiter(
    "auth",
    settings.RATE_LIMIT_AUTH,
    settings.RATE_LIMIT_WINDOW_SECONDS,
    "Too many authentication attempts from this IP, please try again after 15 minutes.",
)
patient_limiter = SlidingWindowLimiter(
    "patient",
    settings.RATE_LIMIT_PATIENT,
    settings.RATE_LIMIT_WINDOW_SECONDS,
    "Too many requests, please slow down.",
)
general_limiter = SlidingWindowLimiter(
    "general",
    settings.RATE_LIMIT_GENERAL,
    settings.RATE_LIMIT_WINDOW_SECONDS,
    "Too many requests from this IP, please try again later.",
)

LIMITERS = {
    limiter.name: limiter for limiter in (auth_limiter, patient_limiter, general_limiter)
}


def reset_limiters() -> None:
    for limiter in LIMITERS.values():
        limiter.reset()


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def check_rate_limit(limiter: SlidingWindowLimiter, request: Request) -> RateLimitResult:
    """Count one hit; raise RATE_LIMITED when the window is exhausted."""
    ip = client_key(request)
    result = limiter.hit(ip)

    if not result.allowed:
        log_security_event(
            "RATE_LIMIT_EXCEEDED",
            {"limiter": limiter.name, "path": request.url.path, "method": request.method},
            ip=ip,
        )
        raise RateLimitedException(limiter.message, headers=result.headers)

    return result


def rate_limit(name: str):
    """
    Dependency factory applying the named limiter to a route.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    """
    limiter = LIMITERS[name]

    async def dependency(request: Request, response: Response) -> None:
        result = check_rate_limit(limiter, request)
        for header, value in result.headers.items():
            response.headers[header] = value

    return dependency


def limit_general(request: Request) -> Optional[RateLimitResult]:
    """Apply the general API budget; health checks are exempt."""
    path = request.url.path
    if not path.startswith(settings.API_PREFIX) or path == f"{settings.API_PREFIX}/health":
        return None
    return check_rate_limit(general_limiter, request)
