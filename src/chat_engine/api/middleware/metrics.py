"""Per-request access log with timing, plus in-process request counters."""
from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

_QUIET_PATHS = frozenset({"/healthz", "/readyz", "/internal/metrics"})


class RequestStats:
    """Counts requests by status class (``2xx``, ``4xx`` ...) and tracks the slowest one."""

    def __init__(self) -> None:
        self._by_status: Counter[str] = Counter()
        self._total_ms = 0.0
        self._max_ms = 0.0

    def record(self, status_code: int, elapsed_ms: float) -> None:
        self._by_status[f"{status_code // 100}xx"] += 1
        self._total_ms += elapsed_ms
        self._max_ms = max(self._max_ms, elapsed_ms)

    def snapshot(self) -> dict[str, Any]:
        total = sum(self._by_status.values())
        return {
            "requests": total,
            "by_status": dict(self._by_status),
            "avg_ms": round(self._total_ms / total, 2) if total else 0.0,
            "max_ms": round(self._max_ms, 2),
        }


class RequestTimingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, stats: RequestStats | None = None) -> None:
        super().__init__(app)
        self.stats = stats or RequestStats()

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        path = request.url.path
        if path not in _QUIET_PATHS:
            self.stats.record(response.status_code, elapsed_ms)
        logger.log(
            logging.DEBUG if path in _QUIET_PATHS else logging.INFO,
            "%s %s %s %.1fms",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
        )
        return response
