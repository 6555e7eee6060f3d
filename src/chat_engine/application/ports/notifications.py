from __future__ import annotations

from typing import Any, Protocol


class DeliveryError(Exception):
    """A notification provider rejected or failed a delivery."""

    def __init__(self, detail: str = "", *, permanent: bool = False) -> None:
        self.detail = detail
        self.permanent = permanent
        super().__init__(detail)


class PushGateway(Protocol):
    async def send(
        self,
        destination_token: str,
        title: str,
        body: str,
        data: dict[str, Any],
    ) -> None: ...


class EmailGateway(Protocol):
    async def send(
        self,
        to_address: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None: ...
