from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_engine.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_engine.api.middleware.metrics import RequestStats, RequestTimingMiddleware
from chat_engine.api.v1.routers import (
    conversations,
    health,
    messages,
    uploads,
    ws,
)
from chat_engine.application.exceptions import AppError, RateLimitedError
from chat_engine.config import settings
from chat_engine.domain.errors import AmbiguousKeyError, DomainError
from chat_engine.runtime import ChatRuntime, build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    owned = getattr(app.state, "runtime", None) is None
    if owned:
        app.state.runtime = build_runtime(settings)
        logger.info("Chat runtime started")

    yield

    if owned:
        await app.state.runtime.aclose()


def create_app(runtime: ChatRuntime | None = None) -> FastAPI:
    app = FastAPI(
        title="Marketplace Chat Engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.request_stats = RequestStats()
    app.add_middleware(RequestTimingMiddleware, stats=app.state.request_stats)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(uploads.router)
    app.include_router(ws.router)

    return app


def _error_body(exc: AppError | DomainError) -> dict[str, Any]:
    return {"detail": exc.detail, "code": exc.code}


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RateLimitedError)
    async def _rate_limited(_req: Request, exc: RateLimitedError) -> JSONResponse:
        body = _error_body(exc)
        body["retry_after_seconds"] = exc.retry_after_seconds
        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(AppError)
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(AmbiguousKeyError)
    async def _ambiguous_key(_req: Request, exc: AmbiguousKeyError) -> JSONResponse:
        body = _error_body(exc)
        body["recovery"] = exc.recovery
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(DomainError)
    async def _domain_error(_req: Request, exc: DomainError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))
