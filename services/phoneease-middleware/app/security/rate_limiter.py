"""Request throttles guarding the endpoints that spend provider money."""

from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque, Protocol

import redis
from redis import Redis

from ..config import Settings

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


class SlidingWindowRateLimiter:
    """Thread-safe in-process sliding window limiter."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._events: defaultdict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._next_sweep = clock() + window_seconds

    def allow(self, key: str) -> bool:
        """Return ``True`` when ``key`` is still within the configured rate."""
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            window = self._events[key]
            while window and now - window[0] >= self._window:
                window.popleft()
            if len(window) >= self._max_requests:
                return False
            window.append(now)
            return True

    def _sweep(self, now: float) -> None:
        # keys whose newest event has left the window
        idle = [
            key for key, window in self._events.items() if not window or now - window[-1] >= self._window
        ]
        for key in idle:
            del self._events[key]
        self._next_sweep = now + self._window


class RedisFixedWindowRateLimiter:
    """Limiter shared across replicas: one Redis counter per key and window."""

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "throttle",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window = window_seconds
        self._key_prefix = key_prefix
        self._clock = clock

    def allow(self, key: str) -> bool:
        bucket = int(self._clock() // self._window)
        redis_key = f"{self._key_prefix}:{key}:{bucket}"
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, self._window)
        count, _ = pipe.execute()
        return int(count) <= self._max_requests


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Instantiate the configured backend, falling back to memory when Redis is unreachable."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
        except redis.RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend")
            return RedisFixedWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
