from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class UploadTicket:
    upload_url: str
    image_url: str
    storage_path: str
    expires_in: int
    max_bytes: int
