"""Redis-backed sliding window rate limiter shared across service replicas."""

from __future__ import annotations

import math
import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError

from .rate_limiter import RateLimitDecision


class RedisSlidingWindowRateLimiter:
    """Distributed sliding window limiter implemented with Redis sorted sets."""

    # Returns {1, 0} when admitted, {0, retry_ms} when the window is full.
    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local counter_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    local current = redis.call('ZCARD', key)
    if current >= max_requests then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        local retry_ms = window_ms
        if oldest[2] then
            retry_ms = tonumber(oldest[2]) + window_ms - now_ms
        end
        return {0, retry_ms}
    end
    local seq = redis.call('INCR', counter_key)
    redis.call('PEXPIRE', counter_key, window_ms)
    redis.call('ZADD', key, now_ms, tostring(now_ms) .. ':' .. tostring(seq))
    redis.call('PEXPIRE', key, window_ms)
    return {1, 0}
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "auth-rate",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def check(self, key: str) -> RateLimitDecision:
        """Record a hit for ``key`` against the shared window."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        try:
            allowed, retry_ms = self._script(
                keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms]
            )
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                return self._check_fallback(redis_key, now_ms)
            raise
        return self._decision(int(allowed) == 1, int(retry_ms))

    def reset(self, key: str) -> None:
        redis_key = f"{self._key_prefix}:{key}"
        self._client.delete(redis_key, f"{redis_key}:seq")

    def _check_fallback(self, redis_key: str, now_ms: int) -> RateLimitDecision:
        """Non-atomic variant used when the server cannot run Lua scripts."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            oldest = self._client.zrange(redis_key, 0, 0, withscores=True)
            retry_ms = self._window_ms
            if oldest:
                retry_ms = int(oldest[0][1]) + self._window_ms - now_ms
            return self._decision(False, retry_ms)
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return self._decision(True, 0)

    @staticmethod
    def _decision(allowed: bool, retry_ms: int) -> RateLimitDecision:
        if allowed:
            return RateLimitDecision(allowed=True)
        return RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(retry_ms / 1000)))
