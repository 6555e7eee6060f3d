from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class BucketState:
    count: int
    window_ends_at: float  # epoch seconds


class RateLimitStore(Protocol):
    """Atomic increment-and-read of a fixed-window counter.

    A missing or expired bucket is (re)created with ``count=1``. Concurrent
    ``hit`` calls on the same key must never lose an increment.
    """

    async def hit(self, key: str, window_seconds: float) -> BucketState: ...
