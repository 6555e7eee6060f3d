"""In-process rate-limit buckets, serialized per key with asyncio locks."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from chat_engine.application.ports.rate_limit import BucketState


@dataclass(slots=True)
class _Bucket:
    count: int
    window_start: float
    window_seconds: float

    @property
    def window_end(self) -> float:
        return self.window_start + self.window_seconds


class InMemoryRateLimitStore:
    """Implements application.ports.rate_limit.RateLimitStore.

    Expired buckets are swept at most once per ``sweep_interval`` seconds,
    piggybacking on ``hit``.
    """

    def __init__(
        self,
        *,
        time_fn: Callable[[], float] = time.time,
        sweep_interval: float = 60.0,
    ) -> None:
        self._time = time_fn
        self._sweep_interval = sweep_interval
        self._buckets: dict[str, _Bucket] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_sweep = time_fn()

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    async def hit(self, key: str, window_seconds: float) -> BucketState:
        if self._time() - self._last_sweep >= self._sweep_interval:
            self.purge_expired()
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            now = self._time()
            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket.window_end:
                bucket = _Bucket(count=1, window_start=now, window_seconds=window_seconds)
                self._buckets[key] = bucket
            else:
                bucket.count += 1
            return BucketState(count=bucket.count, window_ends_at=bucket.window_end)

    def purge_expired(self) -> int:
        """Drop buckets whose window has passed. Returns how many were removed."""
        now = self._time()
        self._last_sweep = now
        expired = [
            k for k, b in self._buckets.items()
            if now >= b.window_end and not self._locks[k].locked()
        ]
        for key in expired:
            del self._buckets[key]
            del self._locks[key]
        return len(expired)
