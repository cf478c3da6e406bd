"""
Integration tests for the API client.

The client talks to the real application in-process: uploads go
through the multipart encoder thread and relay, downloads stream from
the StreamingResponse to disk.
"""

import os

import pytest

from unregistry.client.api import APIError, ClientError, UnregistryClient
from unregistry.client.transfer import MULTIPART_OVERHEAD_ESTIMATE

TEN_MIB = 10 * 1024 * 1024


@pytest.fixture
def big_file(tmp_path):
    path = tmp_path / "a.bin"
    path.write_bytes(os.urandom(TEN_MIB))
    return path


class TestFileTransfers:
    """Tests for file push, pull, list and delete."""

    def test_ten_mib_round_trip(self, api_client, big_file, tmp_path):
        response = api_client.upload_file(big_file)

        assert response == {"message": "File uploaded successfully", "filename": "a.bin"}
        assert api_client.list_files() == ["a.bin"]

        dest = api_client.download_file("a.bin", tmp_path / "pulled.bin")

        assert dest.read_bytes() == big_file.read_bytes()

        api_client.delete_file("a.bin")

        assert api_client.list_files() == []

    def test_upload_progress_is_close_to_estimate(self, api_client, big_file, progress_log):
        """Upload progress counts the whole body; the total is size plus framing estimate."""
        api_client.upload_file(big_file, show_progress=True)

        (progress,) = progress_log
        assert progress.finished
        assert progress.total == TEN_MIB + MULTIPART_OVERHEAD_ESTIMATE
        assert TEN_MIB < progress.count <= progress.total
        assert progress.updates == sorted(progress.updates)

    def test_download_progress_matches_size(self, api_client, big_file, progress_log, tmp_path):
        api_client.upload_file(big_file)

        api_client.download_file("a.bin", tmp_path / "pulled.bin", show_progress=True)

        (progress,) = progress_log
        assert progress.finished
        assert progress.total == TEN_MIB
        assert progress.count == TEN_MIB

    def test_no_progress_unless_asked(self, api_client, big_file, progress_log, tmp_path):
        api_client.upload_file(big_file)
        api_client.download_file("a.bin", tmp_path / "pulled.bin")

        assert progress_log == []

    def test_download_defaults_to_filename(self, api_client, tmp_path, monkeypatch):
        source = tmp_path / "notes.txt"
        source.write_bytes(b"remember")
        api_client.upload_file(source)

        workdir = tmp_path / "work"
        workdir.mkdir()
        monkeypatch.chdir(workdir)

        dest = api_client.download_file("notes.txt")

        assert (workdir / dest).read_bytes() == b"remember"

    def test_empty_file(self, api_client, tmp_path):
        source = tmp_path / "empty"
        source.write_bytes(b"")

        api_client.upload_file(source)
        dest = api_client.download_file("empty", tmp_path / "pulled")

        assert dest.read_bytes() == b""

    def test_name_with_spaces_and_unicode(self, api_client, tmp_path):
        source = tmp_path / "résumé 2024.pdf"
        source.write_bytes(b"pdf")

        api_client.upload_file(source)

        assert api_client.list_files() == ["résumé 2024.pdf"]
        dest = api_client.download_file("résumé 2024.pdf", tmp_path / "out.pdf")
        assert dest.read_bytes() == b"pdf"


class TestImageTransfers:
    """Tests for image archives through the client."""

    def test_image_round_trip(self, api_client, tmp_path):
        archive = tmp_path / "acme_api.tar.gz"
        archive.write_bytes(b"\x1f\x8b pretend gzip")

        response = api_client.upload_image(archive)

        assert response == {"message": "Image uploaded successfully", "image_name": "acme_api"}
        assert api_client.list_images() == ["acme_api"]

        dest = api_client.download_image("acme_api", tmp_path / "pulled.tar.gz")
        assert dest.read_bytes() == archive.read_bytes()

        api_client.delete_image("acme_api")
        assert api_client.list_images() == []


class TestClientErrors:
    """Tests for how failures reach the caller."""

    def test_bad_token_is_api_error_with_raw_body(self, test_client, tmp_path):
        client = UnregistryClient("http://testserver", "wrong", http_client=test_client)

        with pytest.raises(APIError) as exc_info:
            client.list_files()

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == '{"detail":"Invalid token"}'
        assert str(exc_info.value) == 'list failed: {"detail":"Invalid token"}'

    def test_bad_token_upload_fails(self, test_client, tmp_path):
        source = tmp_path / "a.txt"
        source.write_bytes(b"x" * 100_000)
        client = UnregistryClient("http://testserver", "wrong", http_client=test_client)

        with pytest.raises(APIError) as exc_info:
            client.upload_file(source)

        assert exc_info.value.status_code == 401

    def test_download_missing_leaves_no_file(self, api_client, tmp_path):
        dest = tmp_path / "nope.txt"

        with pytest.raises(APIError) as exc_info:
            api_client.download_file("nope.txt", dest)

        assert exc_info.value.status_code == 404
        assert not dest.exists()

    def test_delete_missing_is_api_error(self, api_client):
        with pytest.raises(APIError) as exc_info:
            api_client.delete_image("ghost")

        assert exc_info.value.status_code == 404

    def test_missing_local_file(self, api_client, tmp_path):
        with pytest.raises(ClientError, match="open"):
            api_client.upload_file(tmp_path / "does-not-exist")
