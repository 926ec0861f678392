"""In-memory sliding window rate limiter for authentication endpoints."""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Deque, DefaultDict


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of a limiter check; ``retry_after`` is whole seconds until a slot frees up."""

    allowed: bool
    retry_after: int = 0


class SlidingWindowRateLimiter:
    """Thread-safe sliding window rate limiter."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._events: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def check(self, key: str) -> RateLimitDecision:
        """Record a hit for ``key`` unless the window is already full."""
        now = time.time()
        with self._lock:
            queue = self._events[key]
            while queue and now - queue[0] > self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                retry_after = max(1, math.ceil(self._window - (now - queue[0])))
                return RateLimitDecision(allowed=False, retry_after=retry_after)
            queue.append(now)
            return RateLimitDecision(allowed=True)

    def reset(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)
