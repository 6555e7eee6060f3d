from __future__ import annotations

import logging
import uuid

from chat_engine.application.dto.principal import Principal
from chat_engine.application.dto.upload import UploadTicket
from chat_engine.application.exceptions import ValidationError
from chat_engine.application.ports.storage import UploadUrlSigner
from chat_engine.domain.value_objects.enums import OperationClass
from chat_engine.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}
UPLOAD_PREFIX = "chat-images"


async def request_upload_url(
    principal: Principal,
    file_name: str,
    content_type: str,
    *,
    rate_limiter: RateLimiter,
    signer: UploadUrlSigner,
    expires_in: int,
    max_bytes: int,
) -> UploadTicket:
    """Hand out a short-lived URL the client uploads an image to directly.

    The returned ``image_url`` is what goes into ``send-message`` afterwards.
    """
    await rate_limiter.enforce(OperationClass.UPLOAD, principal.user_id)

    file_name = file_name.strip()
    if not file_name or "/" in file_name or "\\" in file_name:
        raise ValidationError("Invalid file name")
    content_type = content_type.strip().lower()
    extension = ALLOWED_CONTENT_TYPES.get(content_type)
    if extension is None:
        raise ValidationError(
            "Unsupported image type, allowed: " + ", ".join(sorted(ALLOWED_CONTENT_TYPES))
        )

    storage_path = f"{UPLOAD_PREFIX}/{uuid.uuid4()}.{extension}"
    upload_url = signer.sign_upload(storage_path, content_type, expires_in)
    logger.info("Issued upload URL for %s: %s", principal.user_id, storage_path)
    return UploadTicket(
        upload_url=upload_url,
        image_url=signer.public_url(storage_path),
        storage_path=storage_path,
        expires_in=expires_in,
        max_bytes=max_bytes,
    )
