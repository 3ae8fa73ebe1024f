from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: Path = Path("logs")

    cors_origins: str = "*"

    server_name: str = "mcpchat-demo-server"
    server_version: str = "2.0.0"

    time_update_interval_seconds: float = 6.0
    heartbeat_interval_seconds: float = 30.0
    push_queue_size: int = 100

    # MCP over HTTP: plain JSON replies instead of per-request SSE streams
    mcp_json_response: bool = True

    tool_timeout_seconds: float = 5.0
    default_city: str = "New York"
    crypto_cache_ttl_seconds: float = 60.0
    news_cache_ttl_seconds: float = 600.0

    # Used by the client side (Streamlit app / ChatFacade)
    server_url: str = "http://localhost:8000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    return Settings()
