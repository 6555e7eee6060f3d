"""FastAPI dependency injection helpers."""
from __future__ import annotations

import logging
from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chat_engine.application.dto.principal import Principal
from chat_engine.application.uow import UnitOfWork
from chat_engine.runtime import ChatRuntime

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer()


def get_runtime(request: Request) -> ChatRuntime:
    return request.app.state.runtime


RuntimeDep = Annotated[ChatRuntime, Depends(get_runtime)]


async def get_uow(runtime: RuntimeDep) -> AsyncIterator[UnitOfWork]:
    async with runtime.uow_factory() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    runtime: RuntimeDep,
) -> Principal:
    try:
        return await runtime.verifier.verify(credentials.credentials)
    except Exception as exc:
        logger.debug("Bearer token rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
