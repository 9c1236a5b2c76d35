"""
Per-key token bucket for throttling verification-email resends.

In-process only: with several API workers each one keeps its own buckets,
so the effective limit is per worker. Buckets that have refilled to full
capacity are dropped, so the map only holds keys seen within one window.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .exceptions import ResendRateLimitedError


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class ResendRateLimiter:
    """
    Allows `capacity` requests per key, refilled evenly over `window_seconds`.

    A capacity of 0 disables limiting.
    """

    def __init__(
        self,
        capacity: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._capacity = capacity
        # Seconds to regain one token; 0 means the bucket never refills.
        self._seconds_per_token = window_seconds / capacity if capacity > 0 else 0.0
        # Idle time after which any bucket is back at full capacity.
        self._full_after = window_seconds
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._last_prune = clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def check(self, key: str) -> None:
        """
        Consume one token for `key`.

        Raises:
            ResendRateLimitedError: If the bucket is empty
        """
        if self._capacity <= 0:
            return

        now = self._clock()
        with self._lock:
            if now - self._last_prune >= self._full_after:
                self._prune(now)

            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=float(self._capacity), updated_at=now)
                self._buckets[key] = bucket
            else:
                elapsed = now - bucket.updated_at
                if self._seconds_per_token > 0:
                    bucket.tokens = min(self._capacity, bucket.tokens + elapsed / self._seconds_per_token)
                bucket.updated_at = now

            if bucket.tokens < 1:
                if self._seconds_per_token > 0:
                    retry_after = math.ceil((1 - bucket.tokens) * self._seconds_per_token)
                else:
                    retry_after = 0
                raise ResendRateLimitedError(retry_after=retry_after)

            bucket.tokens -= 1

    def prune(self) -> int:
        """Drop buckets that have refilled to capacity. Returns how many were dropped."""
        with self._lock:
            return self._prune(self._clock())

    def _prune(self, now: float) -> int:
        idle = [key for key, bucket in self._buckets.items() if now - bucket.updated_at >= self._full_after]
        for key in idle:
            del self._buckets[key]
        self._last_prune = now
        return len(idle)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
