"""Fixed-window rate limiting per (operation class, user)."""
from __future__ import annotations

import logging
import math
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable

from chat_engine.application.exceptions import RateLimitedError
from chat_engine.application.ports.rate_limit import RateLimitStore
from chat_engine.domain.value_objects.enums import OperationClass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int
    limit: int
    remaining: int


@dataclass(frozen=True, slots=True)
class RateLimitMetrics:
    total_checks: int
    total_denials: int
    denials_by_class: dict[str, int]

    @property
    def denial_ratio(self) -> float:
        if not self.total_checks:
            return 0.0
        return self.total_denials / self.total_checks


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        rules: dict[OperationClass, RateLimitRule],
        *,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._rules = rules
        self._time = time_fn
        self._checks = 0
        self._denials: Counter[str] = Counter()

    def rule_for(self, op_class: OperationClass) -> RateLimitRule:
        try:
            return self._rules[op_class]
        except KeyError:
            raise ValueError(f"No rate limit configured for {op_class!r}") from None

    async def check_and_consume(
        self, op_class: OperationClass, user_id: str,
    ) -> RateLimitDecision:
        rule = self.rule_for(op_class)
        state = await self._store.hit(_bucket_key(op_class, user_id), rule.window_seconds)
        self._checks += 1

        if state.count <= rule.max_requests:
            return RateLimitDecision(
                allowed=True,
                retry_after_seconds=0,
                limit=rule.max_requests,
                remaining=rule.max_requests - state.count,
            )

        self._denials[op_class.value] += 1
        retry_after = max(1, math.ceil(state.window_ends_at - self._time()))
        logger.warning(
            "Rate limit exceeded: class=%s user=%s count=%d limit=%d retry_after=%ds",
            op_class, user_id, state.count, rule.max_requests, retry_after,
        )
        return RateLimitDecision(
            allowed=False,
            retry_after_seconds=retry_after,
            limit=rule.max_requests,
            remaining=0,
        )

    async def enforce(self, op_class: OperationClass, user_id: str) -> RateLimitDecision:
        """Like :meth:`check_and_consume` but raise ``RateLimitedError`` on denial."""
        decision = await self.check_and_consume(op_class, user_id)
        if not decision.allowed:
            raise RateLimitedError(
                f"Too many {op_class} requests, retry in {decision.retry_after_seconds}s",
                retry_after_seconds=decision.retry_after_seconds,
            )
        return decision

    @property
    def metrics(self) -> RateLimitMetrics:
        return RateLimitMetrics(
            total_checks=self._checks,
            total_denials=sum(self._denials.values()),
            denials_by_class=dict(self._denials),
        )


def _bucket_key(op_class: OperationClass, user_id: str) -> str:
    return f"chat:ratelimit:{op_class}:{user_id}"
