"""
Unit tests for the upload transfer pipeline.

These exercise real threads with small relays and short timeouts. Every
test joins what it starts so a failure cannot leave a blocked thread
behind.
"""

import io
import threading
import time

import pytest

from unregistry.client.transfer import (
    MULTIPART_OVERHEAD_ESTIMATE,
    MultipartEncoder,
    PipeRelay,
    RelayClosedError,
    TransferError,
    UploadStream,
    estimated_upload_size,
)


class FailingSource(io.RawIOBase):
    """Source that returns some bytes, then fails like a dying disk."""

    def __init__(self, good_reads: int, chunk: bytes = b"x" * 10) -> None:
        self._good_reads = good_reads
        self._chunk = chunk

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if self._good_reads == 0:
            raise OSError("read failed: input/output error")
        self._good_reads -= 1
        return self._chunk


def run_in_thread(target) -> tuple[threading.Thread, list]:
    """Start target in a thread; the returned list receives any exception it raised."""
    errors: list = []

    def runner():
        try:
            target()
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=runner, daemon=True)
    thread.start()
    return thread, errors


# ---------------------------------------------------------------------------
# PipeRelay Tests
# ---------------------------------------------------------------------------

class TestPipeRelay:
    """Tests for the bounded chunk handoff."""

    def test_chunks_arrive_in_order(self):
        relay = PipeRelay(max_chunks=4)
        relay.write(b"one")
        relay.write(b"two")
        relay.close()

        assert list(relay) == [b"one", b"two"]

    def test_empty_writes_are_dropped(self):
        relay = PipeRelay(max_chunks=4)
        relay.write(b"")
        relay.write(b"a")
        relay.close()

        assert list(relay) == [b"a"]

    def test_writer_blocks_when_full(self):
        """With room for one chunk, the second write waits for the reader."""
        relay = PipeRelay(max_chunks=1)
        written = []

        def writer():
            for chunk in (b"a", b"b", b"c"):
                relay.write(chunk)
                written.append(chunk)
            relay.close()

        thread, errors = run_in_thread(writer)
        time.sleep(0.3)

        assert written == [b"a"]

        assert list(relay) == [b"a", b"b", b"c"]
        thread.join(2)
        assert not thread.is_alive()
        assert errors == []

    def test_close_with_error_fails_reader_after_drain(self):
        """Chunks written before the failure are still delivered, then the error surfaces."""
        relay = PipeRelay(max_chunks=4)
        cause = OSError("disk gone")
        relay.write(b"partial")
        relay.close(cause)

        received = []
        with pytest.raises(TransferError) as exc_info:
            for chunk in relay:
                received.append(chunk)

        assert received == [b"partial"]
        assert exc_info.value.__cause__ is cause

    def test_close_is_idempotent(self):
        relay = PipeRelay(max_chunks=4)
        relay.close()
        relay.close()

        assert list(relay) == []

    def test_write_after_close_fails(self):
        relay = PipeRelay(max_chunks=4)
        relay.close()

        with pytest.raises(TransferError):
            relay.write(b"late")

    def test_close_reader_unblocks_writer(self):
        """A writer stuck on a full relay fails promptly once the reader goes away."""
        relay = PipeRelay(max_chunks=1, write_timeout=None)

        def writer():
            while True:
                relay.write(b"x" * 1024)

        thread, errors = run_in_thread(writer)
        time.sleep(0.2)

        relay.close_reader()
        thread.join(2)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert isinstance(errors[0], RelayClosedError)

    def test_close_after_reader_gone_does_not_raise(self):
        relay = PipeRelay(max_chunks=1)
        relay.close_reader()

        relay.close()

    def test_write_times_out_without_reader(self):
        """A reader that stops consuming cannot stall the writer forever."""
        relay = PipeRelay(max_chunks=1, write_timeout=0.3)
        relay.write(b"fills the relay")

        started = time.monotonic()
        with pytest.raises(TransferError, match="timed out"):
            relay.write(b"never fits")

        assert time.monotonic() - started < 2


# ---------------------------------------------------------------------------
# MultipartEncoder Tests
# ---------------------------------------------------------------------------

class TestMultipartEncoder:
    """Tests for the hand-written multipart framing."""

    def test_body_layout(self):
        encoder = MultipartEncoder("file", "a.bin", io.BytesIO(b"payload"), boundary="b0undary")

        body = b"".join(encoder.iter_encoded())

        assert body == (
            b"--b0undary\r\n"
            b'Content-Disposition: form-data; name="file"; filename="a.bin"\r\n'
            b"Content-Type: application/octet-stream\r\n"
            b"\r\n"
            b"payload"
            b"\r\n--b0undary--\r\n"
        )

    def test_content_type_carries_boundary(self):
        encoder = MultipartEncoder("file", "a.bin", io.BytesIO(), boundary="xyz")

        assert encoder.content_type == "multipart/form-data; boundary=xyz"

    def test_boundaries_are_unique(self):
        first = MultipartEncoder("file", "a", io.BytesIO())
        second = MultipartEncoder("file", "a", io.BytesIO())

        assert first.boundary != second.boundary

    def test_quotes_in_filename_are_escaped(self):
        encoder = MultipartEncoder("file", 'say "hi".txt', io.BytesIO(), boundary="b")

        assert b'filename="say \\"hi\\".txt"' in encoder.part_header()

    def test_payload_is_read_in_chunks(self):
        encoder = MultipartEncoder("file", "a", io.BytesIO(b"x" * 25), chunk_size=10, boundary="b")

        chunks = list(encoder.iter_encoded())

        assert [len(c) for c in chunks[1:-1]] == [10, 10, 5]

    def test_framing_fits_overhead_estimate(self):
        """Header plus trailer stay under the estimate used for progress totals."""
        encoder = MultipartEncoder("image", "x" * 200 + ".tar.gz", io.BytesIO())

        framing = len(encoder.part_header()) + len(encoder.trailer())

        assert framing <= MULTIPART_OVERHEAD_ESTIMATE


# ---------------------------------------------------------------------------
# UploadStream Tests
# ---------------------------------------------------------------------------

class TestUploadStream:
    """Tests for the encoder thread and its relay."""

    def test_streams_full_body(self):
        data = bytes(range(256)) * 1000
        encoder = MultipartEncoder("file", "a.bin", io.BytesIO(data), chunk_size=4096, boundary="b")
        expected = b"".join(
            MultipartEncoder("file", "a.bin", io.BytesIO(data), boundary="b").iter_encoded()
        )

        with UploadStream(encoder, max_chunks=2) as body:
            received = b"".join(body)

        assert received == expected
        assert not body.encoder_alive

    def test_source_failure_aborts_the_body(self):
        """A read error on the source ends the body with TransferError, never a short success."""
        encoder = MultipartEncoder("file", "a.bin", FailingSource(good_reads=3), boundary="b")

        with UploadStream(encoder, max_chunks=2) as body:
            with pytest.raises(TransferError, match="input/output error") as exc_info:
                b"".join(body)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert not body.encoder_alive

    def test_abandoned_stream_stops_encoder(self):
        """Leaving the context mid-body tears down the encoder thread."""
        encoder = MultipartEncoder("file", "big.bin", io.BytesIO(b"x" * (8 * 1024 * 1024)), chunk_size=1024)

        with UploadStream(encoder, max_chunks=2) as body:
            next(iter(body))

        assert not body.encoder_alive

    def test_progress_counts_every_byte(self, progress_observer):
        data = b"y" * 50_000
        observer = progress_observer
        encoder = MultipartEncoder("file", "a.bin", io.BytesIO(data), chunk_size=1000)

        with UploadStream(
            encoder,
            observer=observer,
            total=estimated_upload_size(len(data)),
            description="upload a.bin",
        ) as body:
            received = b"".join(body)

        assert observer.count == len(received)
        assert observer.updates == sorted(observer.updates)
        assert observer.finished
        assert observer.total == len(data) + MULTIPART_OVERHEAD_ESTIMATE
        assert abs(observer.total - observer.count) <= MULTIPART_OVERHEAD_ESTIMATE
        assert observer.description == "upload a.bin"


def test_estimated_upload_size():
    assert estimated_upload_size(0) == MULTIPART_OVERHEAD_ESTIMATE
    assert estimated_upload_size(10) == 10 + MULTIPART_OVERHEAD_ESTIMATE
