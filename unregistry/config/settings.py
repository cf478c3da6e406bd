"""
Server settings, read from the environment.

The variable names match what the container image documents: TOKEN,
DATA_PATH and LISTEN_ADDR. Values are validated when Settings is built,
so a bad chunk size fails before the first request.

Mock mode keeps objects in memory instead of DATA_PATH.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN = "default-token"


class Settings(BaseSettings):
    """
    Server settings loaded from environment variables.

    All settings can be overridden via environment variables
    (TOKEN, DATA_PATH, LISTEN_ADDR, ...).
    """

    # API
    api_title: str = "Unregistry API"
    api_version: str = "0.1.0"
    token: str = Field(
        default=DEFAULT_TOKEN,
        description="Shared bearer token required on every /api request."
    )

    # Storage Configuration
    data_path: Path = Field(
        default=Path("/data"),
        description="Root directory holding the files/ and images/ namespaces."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory storage instead of the data directory. Enables local dev without a volume."
    )
    upload_chunk_size: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Chunk size in bytes used when streaming objects to and from disk."
    )

    # Server
    listen_addr: str = Field(
        default="0.0.0.0:8080",
        description="host:port the HTTP server binds to."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def listen_host(self) -> str:
        """Host part of listen_addr. An empty host means all interfaces."""
        host, _, _ = self.listen_addr.rpartition(":")
        return host or "0.0.0.0"

    @property
    def listen_port(self) -> int:
        """Port part of listen_addr."""
        _, _, port = self.listen_addr.rpartition(":")
        return int(port)

    @property
    def uses_default_token(self) -> bool:
        return self.token == DEFAULT_TOKEN


@lru_cache()
def get_settings() -> Settings:
    """
    Settings for this process, read from the environment once.

    Tests pass their own Settings to create_app instead of touching this.
    """
    return Settings()
