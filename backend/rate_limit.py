# backend/rate_limit.py
"""
Inbound rate limiting for /api/* paths, keyed by client address.

Settings:
- RATE_LIMIT_MAX_REQUESTS (default: 100)
- RATE_LIMIT_WINDOW_SECONDS (default: 900)
- REDIS_URL: optional, enables the Redis-backed limiter shared across workers
"""

import time
import threading
import uuid
from collections import deque
from typing import Deque, Dict, Optional, Tuple

import redis

from backend import monitoring
from backend.config import Settings

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class InMemorySlidingWindowLimiter:
    """Thread-safe in-memory sliding-window rate limiter (per-process)."""

    def __init__(self, max_requests: int = 100, window_seconds: int = 900):
        self.limit = max_requests
        self.window = window_seconds
        self._store: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep: Optional[float] = None

    def _sweep(self, now: float, cutoff: float):
        """Drop keys whose newest hit has left the window. Caller holds the lock."""
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self.window:
            return
        stale = [k for k, hits in self._store.items() if not hits or hits[-1] <= cutoff]
        for k in stale:
            del self._store[k]
        self._last_sweep = now

    def allow_request(self, key: str, now: Optional[float] = None) -> Tuple[bool, Optional[int]]:
        now = time.time() if now is None else now
        cutoff = now - self.window
        with self._lock:
            self._sweep(now, cutoff)
            hits = self._store.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.limit:
                return False, 0
            hits.append(now)
            return True, self.limit - len(hits)

    def reset(self):
        """Reset all state (useful for tests)."""
        with self._lock:
            self._store.clear()
            self._last_sweep = None


class RedisSlidingWindowLimiter:
    """Redis sliding window using one sorted set of hit timestamps per key."""

    def __init__(self, redis_url: str, max_requests: int = 100, window_seconds: int = 900):
        self.limit = max_requests
        self.window = window_seconds
        self._client = redis.from_url(redis_url, decode_responses=True)

    def allow_request(self, key: str, now: Optional[float] = None) -> Tuple[bool, Optional[int]]:
        now = time.time() if now is None else now
        rkey = f"rate:{key}"
        try:
            pipe = self._client.pipeline()
            pipe.zremrangebyscore(rkey, 0, now - self.window)
            pipe.zcard(rkey)
            _, count = pipe.execute()
            if int(count) >= self.limit:
                return False, 0
            pipe = self._client.pipeline()
            pipe.zadd(rkey, {f"{now}:{uuid.uuid4().hex}": now})
            pipe.expire(rkey, self.window)
            pipe.execute()
            return True, self.limit - int(count) - 1
        except redis.RedisError as e:
            # Fail open on Redis errors
            monitoring.logger.warning("Rate limiter backend error", extra={"error": str(e)})
            return True, None


def build_limiter(settings: Settings):
    if settings.redis_url:
        return RedisSlidingWindowLimiter(
            settings.redis_url,
            settings.rate_limit_max_requests,
            settings.rate_limit_window_seconds,
        )
    return InMemorySlidingWindowLimiter(
        settings.rate_limit_max_requests, settings.rate_limit_window_seconds
    )
