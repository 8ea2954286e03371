"""Environment-driven settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

from aski_chat.throttle import DEFAULT_READ_WINDOW


class ChatSettings(BaseSettings):
    api_url: str = "http://localhost:8000"
    api_prefix: str = "/api/chat"
    timeout: float = 30.0

    socket_path: str = "socket.io"
    socket_transports: list[str] = ["websocket", "polling"]
    reconnection_attempts: int = 5
    reconnection_delay: float = 1.0

    read_debounce_seconds: float = DEFAULT_READ_WINDOW
    chat_page_size: int = 20
    message_page_size: int = 50

    model_config = SettingsConfigDict(
        env_prefix="ASKI_",
        env_file=".env",
        extra="ignore",
    )
