from __future__ import annotations

from fastapi import APIRouter

from chat_engine.api.deps import CurrentPrincipal, RuntimeDep
from chat_engine.api.v1.schemas.upload import UploadRequest, UploadResponse
from chat_engine.services import upload_service

router = APIRouter(prefix="/api/v1/chat", tags=["uploads"])


@router.post("/uploads", response_model=UploadResponse, status_code=201)
async def request_upload(
    body: UploadRequest,
    principal: CurrentPrincipal,
    runtime: RuntimeDep,
) -> UploadResponse:
    ticket = await upload_service.request_upload_url(
        principal,
        body.file_name,
        body.content_type,
        rate_limiter=runtime.rate_limiter,
        signer=runtime.signer,
        expires_in=runtime.upload_ttl_seconds,
        max_bytes=runtime.upload_max_bytes,
    )
    return UploadResponse.model_validate(ticket, from_attributes=True)
