"""
HTTP client for the Unregistry API.

Uploads are streamed through the transfer pipeline (see transfer.py),
downloads are streamed straight from the response body to disk. Both
can report progress. Any non-2xx response becomes an APIError carrying
the raw response body; nothing is retried.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from ..core.objects import IMAGE_SUFFIX
from .progress import ConsoleProgress, ProgressObserver, ProgressReader
from .transfer import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_WRITE_TIMEOUT,
    MultipartEncoder,
    TransferError,
    UploadStream,
    estimated_upload_size,
)

logger = logging.getLogger(__name__)

ProgressFactory = Callable[[], ProgressObserver]


class ClientError(Exception):
    """Base class for client failures."""
    pass


class APIError(ClientError):
    """The server answered with a non-success status."""

    def __init__(self, operation: str, status_code: int, body: str) -> None:
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(f"{operation} failed: {body}")


class UnregistryClient:
    """
    Client for the file and image endpoints.

    Pass http_client to reuse a configured httpx.Client (tests pass a
    FastAPI TestClient). The Authorization header is sent per request
    so an injected client needs no setup.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        write_timeout: Optional[float] = DEFAULT_WRITE_TIMEOUT,
        progress_factory: ProgressFactory = ConsoleProgress,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._chunk_size = chunk_size
        self._write_timeout = write_timeout
        self._progress_factory = progress_factory
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "UnregistryClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    @staticmethod
    def _object_path(prefix: str, name: str) -> str:
        return f"{prefix}/{quote(name, safe='')}"

    def _request(self, operation: str, method: str, url: str) -> httpx.Response:
        try:
            response = self._http.request(method, url, headers=self._auth_headers)
        except httpx.HTTPError as e:
            raise TransferError(f"{operation} request: {e}") from e

        if not response.is_success:
            raise APIError(operation, response.status_code, response.text)
        return response

    def _upload(
        self,
        operation: str,
        url: str,
        field_name: str,
        source_path: Path,
        show_progress: bool,
    ) -> dict:
        source_path = Path(source_path)
        filename = source_path.name

        try:
            source = open(source_path, "rb")
        except OSError as e:
            raise ClientError(f"open {source_path}: {e.strerror}") from e

        with source:
            size = os.fstat(source.fileno()).st_size
            encoder = MultipartEncoder(field_name, filename, source, chunk_size=self._chunk_size)
            observer = self._progress_factory() if show_progress else None

            logger.debug(
                "Starting upload",
                extra={"upload_name": filename, "size_bytes": size, "url": url}
            )

            with UploadStream(
                encoder,
                observer=observer,
                total=estimated_upload_size(size),
                description=f"upload {filename}",
                write_timeout=self._write_timeout,
            ) as body:
                try:
                    response = self._http.post(
                        url,
                        content=body,
                        headers={**self._auth_headers, "Content-Type": encoder.content_type},
                    )
                except httpx.HTTPError as e:
                    raise TransferError(f"{operation} request: {e}") from e

        if not response.is_success:
            raise APIError(operation, response.status_code, response.text)
        return response.json()

    def _download(
        self,
        operation: str,
        url: str,
        dest_path: Path,
        show_progress: bool,
    ) -> Path:
        dest_path = Path(dest_path)

        try:
            with self._http.stream("GET", url, headers=self._auth_headers) as response:
                if not response.is_success:
                    response.read()
                    raise APIError(operation, response.status_code, response.text)

                length = response.headers.get("Content-Length")
                total = int(length) if length and length.isdigit() else None

                chunks = response.iter_bytes(self._chunk_size)
                if show_progress:
                    chunks = ProgressReader(
                        chunks,
                        self._progress_factory(),
                        total=total,
                        description=f"download {dest_path.name}",
                    )

                try:
                    with open(dest_path, "wb") as target:
                        for chunk in chunks:
                            target.write(chunk)
                except BaseException:
                    dest_path.unlink(missing_ok=True)
                    raise
        except httpx.HTTPError as e:
            raise TransferError(f"{operation} request: {e}") from e
        except OSError as e:
            raise ClientError(f"save {dest_path}: {e}") from e

        return dest_path

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def upload_file(self, file_path: Path, show_progress: bool = False) -> dict:
        """Upload a local file; it is stored under its base name."""
        return self._upload("upload", "/api/file/upload", "file", file_path, show_progress)

    def download_file(
        self,
        filename: str,
        dest_path: Optional[Path] = None,
        show_progress: bool = False,
    ) -> Path:
        """Download a file to dest_path (default: ./<filename>)."""
        return self._download(
            "download",
            self._object_path("/api/file/download", filename),
            Path(dest_path) if dest_path else Path(filename),
            show_progress,
        )

    def list_files(self) -> list[str]:
        response = self._request("list", "GET", "/api/file/list")
        try:
            return response.json()["files"] or []
        except (ValueError, KeyError) as e:
            raise ClientError(f"decode response: {e}") from e

    def delete_file(self, filename: str) -> None:
        self._request("delete", "DELETE", self._object_path("/api/file", filename))

    # ------------------------------------------------------------------
    # Image operations
    # ------------------------------------------------------------------

    def upload_image(self, image_path: Path, show_progress: bool = False) -> dict:
        """Upload a gzipped image archive; the server strips .tar.gz from its name."""
        return self._upload("upload", "/api/img/upload", "image", image_path, show_progress)

    def download_image(
        self,
        image_name: str,
        dest_path: Optional[Path] = None,
        show_progress: bool = False,
    ) -> Path:
        """Download an image archive to dest_path (default: ./<name>.tar.gz)."""
        return self._download(
            "download",
            self._object_path("/api/img/download", image_name),
            Path(dest_path) if dest_path else Path(image_name + IMAGE_SUFFIX),
            show_progress,
        )

    def list_images(self) -> list[str]:
        response = self._request("list", "GET", "/api/img/list")
        try:
            return response.json()["images"] or []
        except (ValueError, KeyError) as e:
            raise ClientError(f"decode response: {e}") from e

    def delete_image(self, image_name: str) -> None:
        self._request("delete", "DELETE", self._object_path("/api/img", image_name))
