from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"
    RATE_LIMIT_MESSAGE_MAX: int = 10
    RATE_LIMIT_MESSAGE_WINDOW_SECONDS: int = 60
    RATE_LIMIT_UPLOAD_MAX: int = 5
    RATE_LIMIT_UPLOAD_WINDOW_SECONDS: int = 300

    TYPING_TIMEOUT_SECONDS: float = 5.0
    MESSAGE_MAX_LENGTH: int = 1000

    NOTIFY_WHEN_ONLINE: bool = False
    NOTIFICATION_HTTP_TIMEOUT: float = 10.0
    FCM_ENDPOINT: str = "https://fcm.googleapis.com/fcm/send"
    FCM_SERVER_KEY: str | None = None
    SENDGRID_ENDPOINT: str = "https://api.sendgrid.com/v3/mail/send"
    SENDGRID_API_KEY: str | None = None
    SENDGRID_FROM_EMAIL: str = "noreply@changanet.com"
    SENDGRID_FROM_NAME: str = "Changánet"
    APP_BASE_URL: str = "https://changanet.com"

    UPLOAD_BASE_URL: str = "https://storage.changanet.dev"
    UPLOAD_SIGNING_KEY: str = ""
    UPLOAD_MAX_BYTES: int = 5 * 1024 * 1024
    UPLOAD_URL_TTL_SECONDS: int = 3600

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
