"""
Client side of Unregistry.

- api: httpx client for the file and image endpoints
- transfer: streaming multipart upload pipeline
- progress: progress accounting and console rendering
- config: persisted token / server URL
- docker: docker save/load bridge
- cli: the `unrg` command
"""

from .api import APIError, ClientError, UnregistryClient
from .transfer import TransferError

__all__ = ["APIError", "ClientError", "TransferError", "UnregistryClient"]
