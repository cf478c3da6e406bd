"""
Core domain logic for object storage.

This module is framework-agnostic - it doesn't import FastAPI, httpx,
or any infrastructure concerns. Namespaces, name rules, and the
stored object shape live here so the server and the client agree on
them without depending on each other.
"""

from .objects import (
    IMAGE_SUFFIX,
    InvalidObjectNameError,
    Namespace,
    StoredObject,
    strip_image_suffix,
    validate_object_name,
)

__all__ = [
    "IMAGE_SUFFIX",
    "InvalidObjectNameError",
    "Namespace",
    "StoredObject",
    "strip_image_suffix",
    "validate_object_name",
]
