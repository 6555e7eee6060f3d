from __future__ import annotations

import math

import pytest

from chat_engine.domain.value_objects.enums import OperationClass
from chat_engine.infrastructure.rate_limit.redis_store import _HIT_SCRIPT, RedisRateLimitStore
from chat_engine.services.rate_limiter import RateLimiter, RateLimitRule


class ManualClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class ScriptedRedis:
    """Stands in for ``redis.asyncio.Redis``: runs the hit script's steps against a dict."""

    def __init__(self, clock: ManualClock) -> None:
        self._clock = clock
        self.counters: dict[str, int] = {}
        self.expires_at: dict[str, float] = {}
        self.scripts: list[str] = []
        self.calls: list[tuple[list, list]] = []

    def register_script(self, script: str):
        self.scripts.append(script)
        return self._run

    async def _run(self, keys=None, args=None):
        self.calls.append((keys, args))
        (key,), (window_ms,) = keys, args
        now_ms = self._clock() * 1000
        if key in self.expires_at and self.expires_at[key] <= now_ms:
            del self.counters[key]
            del self.expires_at[key]
        count = self.counters.get(key, 0) + 1
        self.counters[key] = count
        if count == 1:
            self.expires_at[key] = now_ms + window_ms
        return [count, math.ceil(self.expires_at[key] - now_ms)]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def redis(clock) -> ScriptedRedis:
    return ScriptedRedis(clock)


def test_store_registers_the_hit_script(redis, clock):
    RedisRateLimitStore(redis, time_fn=clock)

    assert redis.scripts == [_HIT_SCRIPT]
    assert "INCR" in _HIT_SCRIPT and "PEXPIRE" in _HIT_SCRIPT and "PTTL" in _HIT_SCRIPT


@pytest.mark.asyncio
async def test_hit_maps_ttl_to_window_end(redis, clock):
    store = RedisRateLimitStore(redis, time_fn=clock)

    first = await store.hit("rate:message:u1", 60)
    clock.now += 15
    second = await store.hit("rate:message:u1", 60)

    assert (first.count, first.window_ends_at) == (1, 1_060.0)
    assert (second.count, second.window_ends_at) == (2, 1_060.0)
    assert redis.calls[0] == (["rate:message:u1"], [60_000])


@pytest.mark.asyncio
async def test_fractional_window_rounds_up_to_milliseconds(redis, clock):
    store = RedisRateLimitStore(redis, time_fn=clock)

    await store.hit("k", 0.0004)

    assert redis.calls[0][1] == [1]


@pytest.mark.asyncio
async def test_limiter_over_redis_store_denies_after_threshold(redis, clock):
    limiter = RateLimiter(
        RedisRateLimitStore(redis, time_fn=clock),
        {OperationClass.MESSAGE: RateLimitRule(3, 60)},
        time_fn=clock,
    )

    decisions = [await limiter.check_and_consume(OperationClass.MESSAGE, "u1") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert decisions[3].retry_after_seconds > 0
    assert decisions[3].retry_after_seconds <= 60

    clock.now += 61
    assert (await limiter.check_and_consume(OperationClass.MESSAGE, "u1")).allowed
