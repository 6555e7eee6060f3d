"""Request correlation ids, propagated to every log record of the request."""
from __future__ import annotations

import logging
import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

HEADER = "X-Request-ID"

# only short opaque tokens are echoed into logs
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._\-]{1,64}$")


def incoming_or_new(value: str | None) -> str:
    if value and _ACCEPTED_ID.match(value):
        return value
    return uuid.uuid4().hex


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        cid = incoming_or_new(request.headers.get(HEADER))
        token = correlation_id_ctx.set(cid)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)
        response.headers[HEADER] = cid
        return response


class CorrelationIdFilter(logging.Filter):
    """Expose the current request id to log formats as ``%(correlation_id)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx.get() or "-"
        return True
