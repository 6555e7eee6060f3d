from __future__ import annotations

from typing import Protocol


class UploadUrlSigner(Protocol):
    def sign_upload(self, storage_path: str, content_type: str, expires_in: int) -> str: ...

    def public_url(self, storage_path: str) -> str: ...


class ImageValidator(Protocol):
    """Checks an image reference before it is attached to a message.

    Raises ``ValidationError`` when the reference is not acceptable.
    """

    async def validate(self, image_url: str) -> None: ...
