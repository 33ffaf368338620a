from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List

from fastapi import HTTPException, Request


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float

    def retry_after(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(1, math.ceil(self.reset_at - now))


class RateLimiter:
    """Sliding-window counter kept in process memory, one list of hit times per key."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        # Drop keys with no hit inside the window.
        stale = [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self.window_seconds]
        for k in stale:
            del self._hits[k]
        self._last_sweep = now

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            hits = [t for t in self._hits.get(key, []) if now - t < self.window_seconds]
            if len(hits) >= self.max_requests:
                self._hits[key] = hits
                return RateLimitResult(False, 0, hits[0] + self.window_seconds)
            hits.append(now)
            self._hits[key] = hits
            return RateLimitResult(True, self.max_requests - len(hits), hits[0] + self.window_seconds)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or ""
    first = forwarded.split(",")[0].strip()
    return first or "unknown"


def too_many_requests(result: RateLimitResult) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail="Too many requests. Please try again later.",
        headers={
            "Retry-After": str(result.retry_after()),
            "X-RateLimit-Remaining": "0",
        },
    )


def enforce(limiter: RateLimiter, key: str) -> RateLimitResult:
    result = limiter.check(key)
    if not result.allowed:
        raise too_many_requests(result)
    return result
