from __future__ import annotations

import httpx

from chat_engine.application.ports.notifications import DeliveryError


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    *,
    headers: dict[str, str],
    provider: str,
) -> httpx.Response:
    """POST ``payload`` and translate transport and status failures into ``DeliveryError``."""
    try:
        response = await client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException as exc:
        raise DeliveryError(f"{provider} timeout") from exc
    except httpx.HTTPError as exc:
        raise DeliveryError(f"{provider} connection error: {type(exc).__name__}") from exc

    if response.is_success:
        return response
    raise DeliveryError(
        f"{provider} returned HTTP {response.status_code}",
        permanent=not is_retryable_status(response.status_code),
    )
