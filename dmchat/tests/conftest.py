"""
Shared fixtures for the chat service tests.

Run tests:
----------
    pytest dmchat/tests -v
"""

import time
from typing import Any, Callable, Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient

from dmchat.config import Settings
from dmchat.main import create_application
from dmchat.realtime.registry import ConnectionRegistry
from dmchat.realtime.relay import TypingRelay


class FakeChannel:
    """In-memory stand-in for a live connection."""

    def __init__(self, name: str = "channel", fail: bool = False):
        self.name = name
        self.fail = fail
        self.closed = False
        self.sent: List[Dict[str, Any]] = []
        self.close_calls: List[Tuple[int, str]] = []

    def send(self, event: Dict[str, Any]) -> bool:
        if self.fail:
            raise RuntimeError("transport failure")
        if self.closed:
            return False
        self.sent.append(event)
        return True

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        self.closed = True

    def __repr__(self) -> str:
        return f"FakeChannel({self.name!r})"


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    return FakeChannel


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def relay(registry) -> TypingRelay:
    return TypingRelay(registry)


@pytest.fixture
def settings() -> Settings:
    """Create settings for testing"""
    return Settings(
        SESSION_JWT_SECRET="test-jwt-secret-1234567890123456",
        SESSION_JWT_EXPIRY_MINUTES=60,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def app(settings):
    """Create test FastAPI application"""
    return create_application(settings=settings)


@pytest.fixture
def client(app):
    """
    Create test client.

    Entered as a context manager so every HTTP request and WebSocket session
    shares one event loop, as they do in a real server process.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signup(client) -> Callable[[str, str], Dict[str, Any]]:
    """Register a user and return the auth response plus ready-made headers."""

    def _signup(username: str, password: str = "secret-password") -> Dict[str, Any]:
        response = client.post("/api/register", json={"username": username, "password": password})
        assert response.status_code == 201, response.text
        data = response.json()
        data["headers"] = {"Authorization": f"Bearer {data['accessToken']}"}
        return data

    return _signup


@pytest.fixture
def wait_until() -> Callable[..., None]:
    """Poll a condition that the server thread makes true asynchronously."""

    def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return
            time.sleep(0.01)
        raise AssertionError("condition not met before timeout")

    return _wait_until
