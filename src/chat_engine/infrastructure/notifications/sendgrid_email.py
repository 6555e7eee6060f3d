from __future__ import annotations

import logging

import httpx

from chat_engine.infrastructure.notifications._http import post_json

logger = logging.getLogger(__name__)


class SendGridEmailGateway:
    """SendGrid v3 ``mail/send``. A 202 means accepted for delivery."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        api_key: str,
        *,
        from_email: str,
        from_name: str,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._sender = {"email": from_email, "name": from_name}

    async def send(
        self,
        to_address: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        payload = {
            "personalizations": [{"to": [{"email": to_address}]}],
            "from": self._sender,
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text_body},
                {"type": "text/html", "value": html_body},
            ],
        }
        response = await post_json(
            self._client, self._endpoint, payload, headers=self._headers, provider="SendGrid",
        )
        logger.debug(
            "SendGrid accepted email (status=%d, id=%s)",
            response.status_code, response.headers.get("X-Message-Id"),
        )
