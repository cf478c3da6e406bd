"""
Shared fixtures.

Every test gets its own data directory and app instance, so nothing
leaks between tests and nothing touches /data.
"""

from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from unregistry.client.api import UnregistryClient
from unregistry.config.settings import Settings
from unregistry.main import create_app

TEST_TOKEN = "test-token"


class RecordingProgress:
    """Progress observer that only keeps the numbers it was given."""

    def __init__(self) -> None:
        self.total: Optional[int] = None
        self.description = ""
        self.count = 0
        self.updates: list[int] = []
        self.finished = False

    def start(self, total: Optional[int], description: str) -> None:
        self.total = total
        self.description = description

    def advance(self, n: int) -> None:
        self.count += n
        self.updates.append(self.count)

    def finish(self) -> None:
        self.finished = True


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def settings(data_path: Path) -> Settings:
    return Settings(token=TEST_TOKEN, data_path=data_path, upload_chunk_size=64 * 1024)


@pytest.fixture
def test_client(settings: Settings):
    """TestClient with the lifespan running (object store created)."""
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def progress_observer() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def progress_log() -> list[RecordingProgress]:
    """Every progress observer the API client creates, in order."""
    return []


@pytest.fixture
def api_client(test_client, progress_log) -> UnregistryClient:
    """The real client, talking to the app in-process."""

    def factory() -> RecordingProgress:
        observer = RecordingProgress()
        progress_log.append(observer)
        return observer

    return UnregistryClient(
        base_url="http://testserver",
        token=TEST_TOKEN,
        http_client=test_client,
        chunk_size=16 * 1024,
        progress_factory=factory,
    )
