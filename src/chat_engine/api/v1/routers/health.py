from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from chat_engine.api.deps import RuntimeDep

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(runtime: RuntimeDep) -> JSONResponse:
    errors = await runtime.readiness()
    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": errors},
        )
    return JSONResponse(content={"status": "ready"})


@router.get("/internal/metrics")
async def metrics(request: Request, runtime: RuntimeDep) -> dict[str, Any]:
    """Rate limiter, notification, connection and HTTP counters for this process."""
    snapshot = runtime.metrics()
    snapshot["http"] = request.app.state.request_stats.snapshot()
    return snapshot
