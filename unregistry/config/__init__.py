"""
Server configuration.

TOKEN, DATA_PATH and LISTEN_ADDR come from the environment (or a .env
file); everything else has a default suitable for a single container.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
