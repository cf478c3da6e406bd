"""
Domain model for stored objects.

An object is a named, opaque byte sequence living in one of two flat
namespaces. This module knows nothing about disks, HTTP, or FastAPI; it
only defines what a namespace is, what a valid name looks like, and how
a namespace maps an external name onto its storage name.
"""

from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO


IMAGE_SUFFIX = ".tar.gz"

_FORBIDDEN_NAMES = {"", ".", ".."}
_FORBIDDEN_CHARS = ("/", "\\", "\x00")


class InvalidObjectNameError(ValueError):
    """Raised when a name cannot be used as a flat storage key."""
    pass


class Namespace(Enum):
    """
    The two flat collections an object can live in.

    Names never collide across namespaces: "x" may exist as a file
    and as an image at the same time.
    """
    FILE = "file"
    IMAGE = "image"

    @property
    def directory(self) -> str:
        """Directory name under the data root."""
        return "files" if self is Namespace.FILE else "images"

    @property
    def suffix(self) -> str:
        """Suffix appended to names on disk. Never visible to callers."""
        return IMAGE_SUFFIX if self is Namespace.IMAGE else ""

    def storage_name(self, name: str) -> str:
        """Map an external name to the name used in storage."""
        return validate_object_name(name) + self.suffix

    def external_name(self, storage_name: str) -> str | None:
        """
        Map a storage entry back to its external name.

        Returns None for entries that do not belong to this namespace
        (image entries without the storage suffix).
        """
        if not self.suffix:
            return storage_name
        if len(storage_name) <= len(self.suffix) or not storage_name.endswith(self.suffix):
            return None
        return storage_name[: -len(self.suffix)]


def validate_object_name(name: str) -> str:
    """
    Reject names that are unsafe to use as a single path segment.

    Names come straight from URLs and multipart filenames, so anything
    that could escape the namespace directory is refused here rather
    than trusted downstream.
    """
    if name in _FORBIDDEN_NAMES:
        raise InvalidObjectNameError(f"Invalid object name: {name!r}")

    for char in _FORBIDDEN_CHARS:
        if char in name:
            raise InvalidObjectNameError(f"Object name must not contain {char!r}")

    return name


def strip_image_suffix(filename: str) -> str:
    """Drop a trailing .tar.gz from an uploaded image filename, if present."""
    if len(filename) > len(IMAGE_SUFFIX) and filename.endswith(IMAGE_SUFFIX):
        return filename[: -len(IMAGE_SUFFIX)]
    return filename


@dataclass
class StoredObject:
    """
    A fetched object, ready to be streamed.

    The caller owns `stream` and must close it.
    """
    namespace: Namespace
    name: str
    size: int
    stream: BinaryIO

    def iter_chunks(self, chunk_size: int = 1024 * 1024):
        """Yield the object's bytes in chunks, closing the stream at the end."""
        with self.stream:
            while True:
                chunk = self.stream.read(chunk_size)
                if not chunk:
                    break
                yield chunk
