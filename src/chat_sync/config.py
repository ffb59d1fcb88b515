from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:4000"

    LOCAL_USER_ID: int = 1
    # last-used conversation hint (peer user id)
    LAST_CONVERSATION_ID: int | None = None

    LIVE_MODE: Literal["push", "poll"] = "push"
    PAGE_SIZE: int = 20
    POLL_INTERVAL_SECONDS: float = 1.0

    REQUEST_TIMEOUT_SECONDS: float = 10.0
    WS_HEARTBEAT_SECONDS: float = 30.0

    RECONNECT_BASE_DELAY_SECONDS: float = 1.0
    RECONNECT_MAX_DELAY_SECONDS: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int = 8

    MAX_CONTENT_LENGTH: int = 1000

    LOG_LEVEL: str = "INFO"

    @property
    def api_url(self) -> str:
        return self.API_BASE_URL.rstrip("/") + "/v1"

    @property
    def ws_url(self) -> str:
        base = self.api_url
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):]
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):]
        return base

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
