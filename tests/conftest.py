"""Pytest configuration and shared fixtures."""

import hashlib
import sys
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import pytest

# Add package to Python path
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))

from device_updater.session import UpdateSession  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class MockDevice:
    """In-memory stand-in for a device's update handlers.

    PUTs to ``update/*`` answer with the hex SHA-256 of the received body,
    optionally after passing the body through ``tamper`` to simulate a proxy
    rewriting the payload in transit.
    """

    def __init__(self, features: Optional[str] = None):
        self.features = features
        self.requests: List[httpx.Request] = []
        self.received: dict = {}
        self.tamper: Optional[Callable[[bytes], bytes]] = None
        self.overrides: dict = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.lstrip("/")

        if (request.method, path) in self.overrides:
            return self.overrides[(request.method, path)](request)

        if request.method == "PUT" and path.startswith("update/"):
            body = request.content
            if self.tamper:
                body = self.tamper(body)
            self.received[path] = body
            return httpx.Response(200, text=hashlib.sha256(body).hexdigest())

        if request.method == "POST" and path in ("update/switch", "reboot"):
            return httpx.Response(200)

        if request.method == "GET" and path == "update/features":
            if self.features is None:
                return httpx.Response(404, text="404 page not found\n")
            return httpx.Response(200, text=self.features)

        return httpx.Response(404, text="404 page not found\n")

    def respond(self, method: str, path: str, response: Callable[[httpx.Request], httpx.Response]):
        """Override the answer for one endpoint."""
        self.overrides[(method, path)] = response

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def mock_config_dir(temp_dir):
    """Provide a mock per-host configuration root."""
    config_dir = temp_dir / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def device_cert() -> Path:
    """Self-signed CA certificate as stored for a device."""
    return FIXTURES_DIR / "device_cert.pem"


@pytest.fixture
def mock_device():
    """Provide a mock device."""
    return MockDevice()


@pytest.fixture
def session(mock_device):
    """Provide an update session wired to the mock device."""
    client = httpx.Client(transport=httpx.MockTransport(mock_device.handler))
    session = UpdateSession("https://router-7", client)
    yield session
    session.close()


# Markers for test categories
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "requires_network: Tests requiring network")
