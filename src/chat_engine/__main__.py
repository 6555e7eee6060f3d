"""Entrypoint: python -m chat_engine"""
from __future__ import annotations

import logging

import uvicorn

from chat_engine.api.middleware.correlation_id import CorrelationIdFilter

LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[handler])


def main() -> None:
    configure_logging()
    uvicorn.run(
        "chat_engine.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()
