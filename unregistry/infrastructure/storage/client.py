"""
Object storage for uploaded files and container images.

Objects live in two flat namespaces under a data root:

    <root>/files/<name>
    <root>/images/<name>.tar.gz

Mock mode keeps objects in memory, enabling API testing without
touching the filesystem.

A put is staged in <root>/.incoming and moved into place with
os.replace, so a failed put leaves the previous object untouched.

Concurrent puts and gets on the same name are not serialized.
The last writer wins, and a get racing a put may return either the old
or the new object. Callers that need more must coordinate above this
layer.
"""

import io
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

from ...core.objects import Namespace, StoredObject

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024
STAGING_DIRECTORY = ".incoming"


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist."""

    def __init__(self, namespace: Namespace, name: str) -> None:
        self.namespace = namespace
        self.name = name
        super().__init__(f"{namespace.value} not found: {name}")


class ObjectStore(Protocol):
    """
    Protocol for namespace storage operations.

    Using a protocol means tests can provide the in-memory store and
    the API layer never cares where bytes end up.
    """

    def put(self, namespace: Namespace, name: str, source: BinaryIO) -> None:
        """Store the full contents of source under name, replacing any previous object."""
        ...

    def get(self, namespace: Namespace, name: str) -> StoredObject:
        """Open an object for streaming."""
        ...

    def delete(self, namespace: Namespace, name: str) -> None:
        """Remove an object."""
        ...

    def list(self, namespace: Namespace) -> list[str]:
        """List external object names in a namespace."""
        ...

    def check(self) -> None:
        """Raise StorageError if the store cannot serve traffic."""
        ...


class LocalObjectStore:
    """
    Directory-backed object store.

    Each namespace is a single directory; an object is a single file
    inside it. Uploads are staged in a sibling directory that is never
    listed. Directories are created once, at construction.
    """

    def __init__(self, root: Path, copy_chunk_size: int = COPY_CHUNK_SIZE) -> None:
        self._root = Path(root)
        self.copy_chunk_size = copy_chunk_size
        self._dirs = {ns: self._root / ns.directory for ns in Namespace}
        self._staging = self._root / STAGING_DIRECTORY

        try:
            for directory in [*self._dirs.values(), self._staging]:
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot initialize storage: {e.strerror}") from e

        logger.info(
            "Initialized local object store",
            extra={"root": str(self._root)}
        )

    def _path(self, namespace: Namespace, name: str) -> Path:
        return self._dirs[namespace] / namespace.storage_name(name)

    def put(self, namespace: Namespace, name: str, source: BinaryIO) -> None:
        """
        Stream source to a staging file, then move it over the object.

        Put is always a whole-object replace. Until the final rename the
        previous object stays readable and intact.
        """
        path = self._path(namespace, name)
        staged: Optional[Path] = None

        try:
            with tempfile.NamedTemporaryFile(dir=self._staging, prefix="put-", delete=False) as target:
                staged = Path(target.name)
                shutil.copyfileobj(source, target, self.copy_chunk_size)
            os.replace(staged, path)
            staged = None
        except OSError as e:
            logger.error(
                "Failed to store object",
                extra={"namespace": namespace.value, "object_name": name, "error": str(e)}
            )
            raise StorageError(f"Save {namespace.value} failed: {e.strerror}") from e
        finally:
            if staged is not None:
                staged.unlink(missing_ok=True)

        logger.debug(
            "Stored object",
            extra={"namespace": namespace.value, "object_name": name}
        )

    def get(self, namespace: Namespace, name: str) -> StoredObject:
        path = self._path(namespace, name)

        try:
            stream = open(path, "rb")
        except (FileNotFoundError, IsADirectoryError) as e:
            raise ObjectNotFoundError(namespace, name) from e
        except OSError as e:
            raise StorageError(f"Open {namespace.value} failed: {e.strerror}") from e

        size = os.fstat(stream.fileno()).st_size
        return StoredObject(namespace=namespace, name=name, size=size, stream=stream)

    def delete(self, namespace: Namespace, name: str) -> None:
        path = self._path(namespace, name)

        try:
            path.unlink()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(namespace, name) from e
        except OSError as e:
            logger.error(
                "Failed to delete object",
                extra={"namespace": namespace.value, "object_name": name, "error": str(e)}
            )
            raise StorageError(f"Delete {namespace.value} failed: {e.strerror}") from e

        logger.info(
            "Deleted object",
            extra={"namespace": namespace.value, "object_name": name}
        )

    def list(self, namespace: Namespace) -> list[str]:
        """
        List names in directory-entry order.

        Sub-directories are skipped. For images, entries without the
        storage suffix are ignored and the suffix is stripped.
        """
        names = []

        try:
            with os.scandir(self._dirs[namespace]) as entries:
                for entry in entries:
                    if entry.is_dir():
                        continue
                    name = namespace.external_name(entry.name)
                    if name is not None:
                        names.append(name)
        except OSError as e:
            raise StorageError(f"List {namespace.value} failed: {e.strerror}") from e

        return names

    def check(self) -> None:
        for directory in [*self._dirs.values(), self._staging]:
            if not directory.is_dir():
                raise StorageError(f"{directory.name} directory is missing")
            if not os.access(directory, os.W_OK):
                raise StorageError(f"{directory.name} directory is not writable")


# ---------------------------------------------------------------------------
# In-memory store (STORAGE_MOCK_MODE)
# ---------------------------------------------------------------------------

class InMemoryObjectStore:
    """
    In-memory object store for local development and tests.

    Objects are kept per namespace in dictionaries, keyed by their
    storage name so suffix handling matches the on-disk store.

    Contents vanish with the process.
    """

    def __init__(self) -> None:
        self._objects: dict[Namespace, dict[str, bytes]] = {ns: {} for ns in Namespace}
        logger.info("Initialized mock object store (in-memory)")

    def put(self, namespace: Namespace, name: str, source: BinaryIO) -> None:
        key = namespace.storage_name(name)
        self._objects[namespace][key] = source.read()

    def get(self, namespace: Namespace, name: str) -> StoredObject:
        key = namespace.storage_name(name)
        if key not in self._objects[namespace]:
            raise ObjectNotFoundError(namespace, name)

        data = self._objects[namespace][key]
        return StoredObject(
            namespace=namespace,
            name=name,
            size=len(data),
            stream=io.BytesIO(data),
        )

    def delete(self, namespace: Namespace, name: str) -> None:
        key = namespace.storage_name(name)
        if self._objects[namespace].pop(key, None) is None:
            raise ObjectNotFoundError(namespace, name)

    def list(self, namespace: Namespace) -> list[str]:
        names = []
        for key in self._objects[namespace]:
            name = namespace.external_name(key)
            if name is not None:
                names.append(name)
        return names

    def check(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_object_store(
    root: Optional[Path] = None,
    mock_mode: bool = False,
    copy_chunk_size: int = COPY_CHUNK_SIZE,
) -> ObjectStore:
    """
    Create an object store based on configuration.

    Args:
        root: Data root directory (required if not mock_mode)
        mock_mode: If True, return the in-memory store
        copy_chunk_size: Read size used when writing uploads to disk

    Returns:
        ObjectStore implementation (local or in-memory)
    """
    if mock_mode:
        return InMemoryObjectStore()

    if root is None:
        raise ValueError("root is required when not in mock mode")

    return LocalObjectStore(root, copy_chunk_size=copy_chunk_size)


__all__ = [
    "InMemoryObjectStore",
    "LocalObjectStore",
    "ObjectNotFoundError",
    "ObjectStore",
    "StorageError",
    "create_object_store",
]
