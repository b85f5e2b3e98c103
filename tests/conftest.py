# tests/conftest.py
import pytest
import pytest_asyncio
import httpx
from unittest.mock import MagicMock
from pathlib import Path

from drivegate.config import Settings, get_settings
from drivegate.gateway import DriveGateway

API = "https://www.googleapis.com/drive/v3"
UPLOAD = "https://www.googleapis.com/upload/drive/v3"
TOKEN = "test-token"


@pytest.fixture
def mock_settings():
    """
    Provides a mock of the application settings for testing.
    This avoids the need for environment variables during tests.
    """
    settings = MagicMock(spec=Settings)
    settings.DRIVE_ACCESS_TOKEN = TOKEN
    settings.DRIVE_API_BASE_URL = API
    settings.DRIVE_UPLOAD_BASE_URL = UPLOAD
    settings.DRIVE_FOLDER_ID = None
    settings.LIST_PAGE_SIZE = 100
    settings.HTTP_CONNECT_TIMEOUT = 5.0
    settings.HTTP_READ_TIMEOUT = 30.0
    settings.LOG_LEVEL = "INFO"
    settings.BASE_DIR = Path("/tmp")
    settings.LOG_FILE = Path("/tmp/drivegate.log")
    return settings


@pytest.fixture(autouse=True)
def patch_settings_class(monkeypatch, mock_settings):
    """
    Replaces the `Settings` constructor so no real settings are ever loaded.
    The get_settings cache is cleared because it may hold a real instance.
    """
    get_settings.cache_clear()
    monkeypatch.setattr("drivegate.config.Settings", lambda *args, **kwargs: mock_settings)
    yield
    get_settings.cache_clear()


class FakeDrive:
    """
    Scripted remote store for httpx.MockTransport.
    Responses are queued per (method, path) and served in order; every
    request is recorded so tests can assert on what was sent.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method: str, path: str, *responses):
        self.routes.setdefault((method, path), []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def calls(self, method: str, path: str):
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def drive():
    return FakeDrive()


@pytest_asyncio.fixture
async def gateway(drive, mock_settings):
    """A DriveGateway wired to the FakeDrive, closed after the test."""
    gateway = DriveGateway(
        TOKEN, settings=mock_settings, http_transport=httpx.MockTransport(drive.handler)
    )
    yield gateway
    await gateway.aclose()


class LazyStream(httpx.AsyncByteStream):
    """
    Response body that is produced only when iterated.
    `consumed` counts the chunks handed out so far; `fail_after` raises a
    transport error once that many chunks have been sent.
    """

    def __init__(self, chunks, fail_after=None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.consumed = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            if self.fail_after is not None and self.consumed >= self.fail_after:
                raise httpx.ReadError("connection reset")
            self.consumed += 1
            yield chunk


def file_item(file_id="f1", name="note.txt", mime_type="text/plain", **extra):
    item = {
        "id": file_id,
        "name": name,
        "mimeType": mime_type,
        "modifiedTime": "2024-01-01T00:00:00Z",
    }
    item.update(extra)
    return item
