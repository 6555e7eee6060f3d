from __future__ import annotations

import logging
from urllib.parse import urlparse

from chat_engine.application.exceptions import ValidationError

logger = logging.getLogger(__name__)


class StoredImageValidator:
    """Accepts only images that live under our upload storage.

    With no ``allowed_base_url`` configured every http(s) URL passes.
    """

    def __init__(self, allowed_base_url: str | None = None, prefix: str = "chat-images/") -> None:
        self._base = urlparse(allowed_base_url) if allowed_base_url else None
        self._prefix = prefix

    async def validate(self, image_url: str) -> None:
        parsed = urlparse(image_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Image reference must be an absolute http(s) URL")
        if self._base is None:
            return
        base_path = self._base.path.rstrip("/")
        expected_path = f"{base_path}/{self._prefix}"
        if parsed.netloc != self._base.netloc or not parsed.path.startswith(expected_path):
            logger.info("Rejected foreign image reference on host %s", parsed.netloc)
            raise ValidationError("Image must be uploaded through the chat upload endpoint")
