"""
Object storage for the file and image namespaces.

Backed by a local directory, with an in-memory mock mode for local
development and tests.
"""

from .client import (
    InMemoryObjectStore,
    LocalObjectStore,
    ObjectNotFoundError,
    ObjectStore,
    StorageError,
    create_object_store,
)

__all__ = [
    "InMemoryObjectStore",
    "LocalObjectStore",
    "ObjectNotFoundError",
    "ObjectStore",
    "StorageError",
    "create_object_store",
]
