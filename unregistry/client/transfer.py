"""
Streaming transfer pipeline for uploads.

httpx wants a single iterable request body, but a multipart body needs
framing written before and after the payload and we do not want to
hold the payload in memory. So the body is produced concurrently:

    source file -> MultipartEncoder (worker thread) -> PipeRelay -> httpx

The relay is a bounded queue of byte chunks. The encoder blocks when
the relay is full (the network is slower than the disk), httpx blocks
when it is empty. That blocking is the only synchronization between
the two sides.

UploadStream owns the worker thread. Whatever way the HTTP call ends,
leaving the UploadStream tears down the read end and joins the thread,
so an encoder is never left blocked on a relay nobody reads.
"""

import logging
import queue
import threading
import time
import uuid
from typing import BinaryIO, Iterable, Iterator, Optional

from .progress import ProgressObserver, ProgressReader

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_RELAY_CHUNKS = 16
DEFAULT_WRITE_TIMEOUT = 300.0

# Upper bound on boundary and part-header bytes added around the payload.
# Upload progress totals are source size plus this estimate.
MULTIPART_OVERHEAD_ESTIMATE = 1024

_POLL_INTERVAL = 0.1
_EOF = object()


class TransferError(Exception):
    """Raised when a streamed transfer cannot complete."""
    pass


class RelayClosedError(TransferError):
    """Raised on write after the read end has been torn down."""
    pass


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


class PipeRelay:
    """
    Bounded producer/consumer handoff with one write end and one read end.

    Writers call write() and finally close(), optionally with the error
    that stopped them. The reader iterates the relay. The reader side is
    torn down with close_reader(), which makes pending and future writes
    fail instead of blocking forever.
    """

    def __init__(
        self,
        max_chunks: int = DEFAULT_RELAY_CHUNKS,
        write_timeout: Optional[float] = DEFAULT_WRITE_TIMEOUT,
    ) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=max_chunks)
        self._write_timeout = write_timeout
        self._reader_closed = threading.Event()
        self._writer_closed = False

    @property
    def reader_closed(self) -> bool:
        return self._reader_closed.is_set()

    def _put(self, item) -> None:
        deadline = None
        if self._write_timeout is not None:
            deadline = time.monotonic() + self._write_timeout

        while True:
            if self._reader_closed.is_set():
                raise RelayClosedError("Relay read end is closed")
            try:
                self._queue.put(item, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                if deadline is not None and time.monotonic() >= deadline:
                    raise TransferError(
                        f"Relay write timed out after {self._write_timeout:.0f}s"
                    )

    def write(self, data: bytes) -> None:
        """Hand a chunk to the reader, blocking while the relay is full."""
        if self._writer_closed:
            raise TransferError("Write to closed relay")
        if data:
            self._put(bytes(data))

    def close(self, error: Optional[BaseException] = None) -> None:
        """
        Finish the write end.

        With an error, the reader fails with TransferError once it has
        drained the chunks written before the failure.
        """
        if self._writer_closed:
            return
        self._writer_closed = True

        try:
            self._put(_Failure(error) if error is not None else _EOF)
        except TransferError:
            # Nobody is reading any more
            pass

    def close_reader(self) -> None:
        """Tear down the read end and discard anything still queued."""
        self._reader_closed.set()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def __iter__(self) -> Iterator[bytes]:
        while True:
            if self._reader_closed.is_set():
                raise RelayClosedError("Relay read end is closed")

            item = self._queue.get()
            if item is _EOF:
                return
            if isinstance(item, _Failure):
                raise TransferError(f"Upload source failed: {item.error}") from item.error
            yield item


class MultipartEncoder:
    """
    Encodes one file field as a multipart/form-data body.

    Framing is written by hand (rather than with a buffering encoder)
    so the payload can be streamed chunk by chunk into a relay.
    """

    def __init__(
        self,
        field_name: str,
        filename: str,
        source: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        boundary: Optional[str] = None,
    ) -> None:
        self.field_name = field_name
        self.filename = filename
        self.source = source
        self.chunk_size = chunk_size
        self.boundary = boundary or uuid.uuid4().hex

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @staticmethod
    def _quote(value: str) -> str:
        return value.replace("\\", "\\\\").replace('"', '\\"')

    def part_header(self) -> bytes:
        return (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{self._quote(self.field_name)}"; '
            f'filename="{self._quote(self.filename)}"\r\n'
            f"Content-Type: application/octet-stream\r\n"
            f"\r\n"
        ).encode("utf-8")

    def trailer(self) -> bytes:
        return f"\r\n--{self.boundary}--\r\n".encode("ascii")

    def iter_encoded(self) -> Iterator[bytes]:
        """Yield the full encoded body: header, payload chunks, trailer."""
        yield self.part_header()
        while True:
            chunk = self.source.read(self.chunk_size)
            if not chunk:
                break
            yield chunk
        yield self.trailer()

    def encode_into(self, relay: PipeRelay) -> None:
        """
        Write the encoded body into relay, then close it.

        Runs on the encoder thread. A failure reading the source closes
        the relay with that error so the HTTP side aborts.
        """
        try:
            for chunk in self.iter_encoded():
                relay.write(chunk)
        except RelayClosedError:
            logger.debug("Relay closed before upload body was fully written")
            return
        except Exception as e:
            logger.debug("Multipart encoding failed", extra={"error": str(e)})
            relay.close(e)
            return

        relay.close()


class UploadStream:
    """
    Context manager that runs a MultipartEncoder on a worker thread.

    Iterating the stream yields the encoded body, so an UploadStream can
    be passed directly as httpx request content. With an observer,
    every chunk handed to httpx is counted as progress.

        with UploadStream(encoder, observer=bar, total=size) as body:
            client.post(url, content=body, headers={"Content-Type": encoder.content_type})
    """

    def __init__(
        self,
        encoder: MultipartEncoder,
        observer: Optional[ProgressObserver] = None,
        total: Optional[int] = None,
        description: str = "",
        max_chunks: int = DEFAULT_RELAY_CHUNKS,
        write_timeout: Optional[float] = DEFAULT_WRITE_TIMEOUT,
        join_timeout: float = 5.0,
    ) -> None:
        self.encoder = encoder
        self.relay = PipeRelay(max_chunks=max_chunks, write_timeout=write_timeout)
        self._observer = observer
        self._total = total
        self._description = description
        self._join_timeout = join_timeout
        self._thread: Optional[threading.Thread] = None

    @property
    def encoder_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> "UploadStream":
        self._thread = threading.Thread(
            target=self.encoder.encode_into,
            args=(self.relay,),
            name=f"multipart-encoder-{self.encoder.filename}",
            daemon=True,
        )
        self._thread.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self.relay.close_reader()
        if self._thread is not None:
            self._thread.join(self._join_timeout)
            if self._thread.is_alive():
                logger.warning(
                    "Encoder thread did not stop",
                    extra={"upload_name": self.encoder.filename}
                )

    def __iter__(self) -> Iterator[bytes]:
        body: Iterable[bytes] = self.relay
        if self._observer is not None:
            body = ProgressReader(
                body,
                self._observer,
                total=self._total,
                description=self._description,
            )
        yield from body


def estimated_upload_size(source_size: int) -> int:
    """Progress total for an upload: payload plus framing estimate."""
    return source_size + MULTIPART_OVERHEAD_ESTIMATE
