from __future__ import annotations

from pydantic import BaseModel, Field


class UploadRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    content_type: str


class UploadResponse(BaseModel):
    upload_url: str
    image_url: str
    storage_path: str
    expires_in: int
    max_bytes: int

    model_config = {"from_attributes": True}
