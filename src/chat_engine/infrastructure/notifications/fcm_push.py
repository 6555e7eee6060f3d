"""Firebase Cloud Messaging push gateway (HTTP API)."""
from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from chat_engine.application.ports.notifications import DeliveryError
from chat_engine.infrastructure.notifications._http import post_json

logger = logging.getLogger(__name__)

# FCM per-result errors that mean the token will never work again
_PERMANENT_ERRORS = frozenset({"NotRegistered", "InvalidRegistration", "MismatchSenderId"})


class FcmPushGateway:
    def __init__(self, client: httpx.AsyncClient, endpoint: str, server_key: str) -> None:
        self._client = client
        self._endpoint = endpoint
        self._headers = {
            "Authorization": f"key={server_key}",
            "Content-Type": "application/json",
        }

    async def send(
        self,
        destination_token: str,
        title: str,
        body: str,
        data: dict[str, Any],
    ) -> None:
        payload = build_fcm_payload(destination_token, title, body, data)
        response = await post_json(
            self._client, self._endpoint, payload, headers=self._headers, provider="FCM",
        )
        try:
            body_json = response.json()
        except ValueError:
            return
        if body_json.get("failure"):
            error = (body_json.get("results") or [{}])[0].get("error", "unknown")
            raise DeliveryError(f"FCM rejected token: {error}", permanent=error in _PERMANENT_ERRORS)
        logger.debug("FCM accepted message %s", body_json.get("multicast_id"))


def build_fcm_payload(
    token: str, title: str, body: str, data: dict[str, Any],
) -> dict[str, Any]:
    return {
        "to": token,
        "priority": "high",
        "notification": {
            "title": title,
            "body": body,
            "icon": "/favicon.ico",
            "color": "#10B981",
            "sound": "default",
            "android_channel_id": "messages_channel",
        },
        "data": {
            **{k: str(v) for k, v in data.items()},
            "timestamp": str(int(time.time() * 1000)),
        },
        "content_available": True,
    }
