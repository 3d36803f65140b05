"""Shared pytest fixtures for creatorgen tests."""

import base64
import io
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest
from PIL import Image

from creatorgen.core.config import CreatorGenConfig
from creatorgen.core.models import Profile
from creatorgen.storage.datastore import SQLiteDatastore
from creatorgen.storage.object_storage import LocalObjectStorage

QUEUE_URL = "https://queue.test"
GEMINI_URL = "https://gemini.test/v1beta"
RECHARGE_URL = "https://billing.test/api/auto-charge"
PUBLIC_BASE_URL = "http://testserver"
RESULT_URL = "https://cdn.test/generated/out.png"


class FakeUpstream:
    """Scriptable stand-in for every outbound HTTP endpoint.

    Routes are keyed by ``(METHOD, url-without-query)``.  Each route holds a
    list of responses served in order; the last one repeats.  A response is a
    ``(status, body)`` tuple (dict bodies are sent as JSON, bytes as
    content), a callable taking the request, or an exception to raise.
    Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[Any]] = {}

    def add(self, method: str, url: str, *responses: Any) -> None:
        self.routes[(method.upper(), url)] = list(responses)

    def add_asset(self, url: str, data: bytes, content_type: str = "image/png") -> None:
        self.add("GET", url, lambda request: httpx.Response(200, content=data, headers={"content-type": content_type}))

    def calls(self, method: str, prefix: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and str(r.url).startswith(prefix)]

    def queue_job(
        self,
        upstream_model: str = "fal-ai/nano-banana-pro",
        *,
        request_id: str = "req-1",
        statuses: tuple[str, ...] = ("IN_QUEUE", "IN_PROGRESS", "COMPLETED"),
        result_url: str = RESULT_URL,
        edit: bool = False,
    ) -> None:
        """Script a queue job that walks through *statuses* and then yields *result_url*."""
        base = f"{QUEUE_URL}/{upstream_model}"
        submit_url = f"{base}/edit" if edit else base
        self.add("POST", submit_url, (200, {"request_id": request_id}))
        self.add(
            "GET",
            f"{base}/requests/{request_id}/status",
            *[(200, {"status": status}) for status in statuses],
        )
        self.add("GET", f"{base}/requests/{request_id}", (200, {"images": [{"url": result_url}]}))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?")[0])
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"detail": "not found"})

        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        status, body = response
        if isinstance(body, (bytes, bytearray)):
            return httpx.Response(status, content=bytes(body))
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_png(width: int = 64, height: int = 64, color: tuple[int, int, int] = (200, 40, 40)) -> bytes:
    """Return PNG bytes of a solid-colour image."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def gemini_image_response(data: bytes, mime_type: str = "image/png") -> dict:
    """Body of a successful ``generateContent`` call carrying one image."""
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here is your image."},
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode("ascii")}},
                    ]
                }
            }
        ]
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> CreatorGenConfig:
    """Create a test configuration with temporary directories and tiny budgets.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        CreatorGenConfig instance for testing
    """
    return CreatorGenConfig(
        _env_file=None,
        data_dir=temp_dir / "data",
        storage_dir=temp_dir / "storage",
        public_base_url=PUBLIC_BASE_URL,
        fal_key="test-fal-key",
        fal_queue_url=QUEUE_URL,
        gemini_api_key="test-gemini-key",
        gemini_base_url=GEMINI_URL,
        auto_recharge_url=RECHARGE_URL,
        internal_secret="test-secret",
        poll_interval_seconds=0.01,
        poll_budget_seconds=2.0,
        rate_limit_retry_delay_seconds=0.0,
        http_timeout_seconds=5.0,
    )


@pytest.fixture
def datastore(test_config: CreatorGenConfig) -> SQLiteDatastore:
    """SQLite datastore in the temporary data directory."""
    return SQLiteDatastore(test_config.database_path)


@pytest.fixture
def storage(test_config: CreatorGenConfig) -> LocalObjectStorage:
    """Local object storage in the temporary storage directory."""
    return LocalObjectStorage(test_config.storage_dir, test_config.storage_bucket, test_config.public_base_url)


@pytest.fixture
def upstream() -> FakeUpstream:
    """Fresh scriptable upstream for each test."""
    return FakeUpstream()


@pytest.fixture
def http_client(upstream: FakeUpstream) -> httpx.AsyncClient:
    """Async HTTP client routed to the fake upstream.

    The client holds no open connections with a mock transport, so it is not
    closed explicitly.
    """
    return httpx.AsyncClient(transport=upstream.transport)


@pytest.fixture
def png_bytes() -> bytes:
    """Small PNG image."""
    return make_png()


@pytest.fixture
def make_profile() -> Callable[..., Profile]:
    """Factory for profiles with sensible defaults."""

    def _make(user_id: str = "user-1", credits: int = 10, role: str = "user", **kwargs: Any) -> Profile:
        return Profile(user_id=user_id, credits=credits, role=role, **kwargs)

    return _make


@pytest.fixture
def app(test_config: CreatorGenConfig, upstream: FakeUpstream):
    """Application wired to the test configuration and the fake upstream."""
    from creatorgen.api.main import create_app

    return create_app(test_config, http_transport=upstream.transport)


@pytest.fixture
def test_client(app) -> Generator:
    """TestClient with the application lifespan running."""
    from fastapi.testclient import TestClient

    with TestClient(app) as client:
        yield client
