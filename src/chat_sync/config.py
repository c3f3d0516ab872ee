from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str = "chat"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "chat"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"
    REALTIME_TOPIC_PREFIX: str = "chat.realtime"

    CONVERSATIONS_TTL_SECONDS: float = 60.0
    MESSAGES_TTL_SECONDS: float = 120.0
    CACHE_MAX_ENTRIES: int | None = None

    COORDINATOR_MAX_CONCURRENCY: int = 4

    READ_SETTLE_SECONDS: float = 1.0

    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_ATTEMPTS: int = 3

    REFRESH_INTERVAL_SECONDS: float = 30.0

    MESSAGE_MAX_LENGTH: int = 5000
    ATTACHMENT_MAX_BYTES: int = 5 * 1024 * 1024
    ATTACHMENT_ALLOWED_TYPES: list[str] = [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/zip",
        "text/plain",
    ]

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


settings = Settings()
