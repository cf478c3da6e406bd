"""
Client-side configuration: which server to talk to and with what token.

Stored as JSON in ~/.unrg/config.json. Set UNRG_CONFIG_DIR to keep it
somewhere else (tests do).
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "UNRG_CONFIG_DIR"
CONFIG_FILENAME = "config.json"
DEFAULT_BASE_URL = "http://localhost:8080"


class ConfigError(Exception):
    """Raised when client configuration cannot be read, written, or is incomplete."""
    pass


class ClientConfig(BaseModel):
    """Token and server URL used by every client command."""
    token: str = Field(default="", description="Bearer token sent to the server")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Server base URL")

    def require_token(self) -> str:
        if not self.token:
            raise ConfigError(
                "no token configured. Use 'unrg config set-token <token>' first"
            )
        return self.token


def config_path() -> Path:
    """Location of the config file. The directory is created if missing."""
    config_dir = os.environ.get(CONFIG_DIR_ENV)
    directory = Path(config_dir) if config_dir else Path.home() / ".unrg"

    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"create config dir: {e}") from e

    return directory / CONFIG_FILENAME


def load_config(path: Optional[Path] = None) -> ClientConfig:
    """Load the config file, falling back to defaults when it does not exist."""
    path = path or config_path()

    if not path.exists():
        return ClientConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClientConfig.model_validate(data)
    except OSError as e:
        raise ConfigError(f"read config file: {e}") from e
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"parse config: {e}") from e


def save_config(config: ClientConfig, path: Optional[Path] = None) -> Path:
    """Write the config file with owner-only permissions."""
    path = path or config_path()

    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(config.model_dump_json(indent=2))
    except OSError as e:
        raise ConfigError(f"write config file: {e}") from e

    logger.debug("Saved client config", extra={"config_path": str(path)})
    return path
