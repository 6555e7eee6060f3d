"""Redis-backed rate-limit buckets shared by every service instance."""
from __future__ import annotations

import math
import time
from typing import Callable

import redis.asyncio as aioredis

from chat_engine.application.ports.rate_limit import BucketState

# INCR and the first-hit PEXPIRE run atomically inside Redis.
_HIT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


class RedisRateLimitStore:
    """Implements application.ports.rate_limit.RateLimitStore."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._time = time_fn
        self._script = redis.register_script(_HIT_SCRIPT)

    async def hit(self, key: str, window_seconds: float) -> BucketState:
        window_ms = max(1, math.ceil(window_seconds * 1000))
        count, ttl_ms = await self._script(keys=[key], args=[window_ms])
        return BucketState(
            count=int(count),
            window_ends_at=self._time() + int(ttl_ms) / 1000,
        )
