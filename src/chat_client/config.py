from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_URL: str = "http://localhost:5000/api"
    # Empty means "derive from API_URL".
    PUSH_URL: str = ""
    SOCKETIO_PATH: str = "socket.io"

    HTTP_TIMEOUT: float = 15.0
    CONNECT_TIMEOUT: float = 10.0

    RECONNECT_DELAY: float = 2.0
    MAX_RECONNECT_ATTEMPTS: int = 3
    AUTH_FAILURE_THRESHOLD: int = 3

    REFRESH_DEBOUNCE: float = 0.5
    AUTO_SELECT_DELAY: float = 0.2
    MARK_READ_ON_SELECT_DELAY: float = 0.5
    IN_FLIGHT_CLEAR_DELAY: float = 1.0
    ALERT_DELAY: float = 0.1

    PREVIEW_MAX_LENGTH: int = 50
    HISTORY_PAGE_SIZE: int = 50

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    # Console runner only.
    ACCESS_TOKEN: str = ""
    REFRESH_TOKEN: str = ""
    CHANNEL: str = "support_chat"
    LOG_LEVEL: str = "INFO"

    @property
    def push_url(self) -> str:
        if self.PUSH_URL:
            return self.PUSH_URL.rstrip("/")
        base = self.API_URL.rstrip("/")
        if base.endswith("/api"):
            base = base[: -len("/api")]
        return base

    model_config = ConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
