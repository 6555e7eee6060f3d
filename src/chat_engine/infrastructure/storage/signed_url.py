"""HMAC-signed direct upload URLs (SHA-256 over path, content type and expiry)."""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable
from urllib.parse import quote, urlencode


class HmacUploadUrlSigner:
    def __init__(
        self,
        base_url: str,
        signing_key: str,
        *,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        if not signing_key:
            raise ValueError("Upload signing key must not be empty")
        self._base_url = base_url.rstrip("/")
        self._key = signing_key.encode("utf-8")
        self._time = time_fn

    def sign_upload(self, storage_path: str, content_type: str, expires_in: int) -> str:
        expires_at = int(self._time()) + expires_in
        signature = self.signature(storage_path, content_type, expires_at)
        query = urlencode(
            {"content_type": content_type, "expires": expires_at, "signature": signature}
        )
        return f"{self._base_url}/upload/{quote(storage_path)}?{query}"

    def public_url(self, storage_path: str) -> str:
        return f"{self._base_url}/{quote(storage_path)}"

    def signature(self, storage_path: str, content_type: str, expires_at: int) -> str:
        payload = f"PUT\n{storage_path}\n{content_type}\n{expires_at}".encode("utf-8")
        return hmac.new(self._key, payload, hashlib.sha256).hexdigest()

    def verify(
        self, storage_path: str, content_type: str, expires_at: int, signature: str,
    ) -> bool:
        if expires_at < self._time():
            return False
        expected = self.signature(storage_path, content_type, expires_at)
        return hmac.compare_digest(expected, signature)
