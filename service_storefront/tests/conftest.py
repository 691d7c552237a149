"""
Shared fixtures for storefront service tests.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from storefront_shared.config import StorefrontConfig

GRAPHQL_ENDPOINT = "https://graphql.test/service/application/graphql"


class FakeGraphQLServer:
    """Scripted GraphQL endpoint behind an httpx.MockTransport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._queue: List[Any] = []
        self._default: Optional[Callable[[httpx.Request], Any]] = None
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request):
        self.requests.append(request)
        if self._queue:
            item = self._queue.pop(0)
        elif self._default is not None:
            item = self._default
        else:
            raise AssertionError("Unexpected GraphQL request")

        if isinstance(item, Exception):
            raise item
        return item(request)

    @staticmethod
    def _responder(data=None, errors=None, status_code=200, headers=None):
        body: Dict[str, Any] = {}
        if data is not None:
            body["data"] = data
        if errors is not None:
            body["errors"] = errors

        def respond(request):
            return httpx.Response(status_code, json=body, headers=headers)
        return respond

    def reply(self, data=None, errors=None, status_code=200, headers=None, times=1):
        for _ in range(times):
            self._queue.append(self._responder(data, errors, status_code, headers))

    def always(self, data=None, errors=None, status_code=200, headers=None):
        self._default = self._responder(data, errors, status_code, headers)

    def respond_with(self, handler):
        self._queue.append(handler)

    def fail_with(self, error: Exception, times=1):
        for _ in range(times):
            self._queue.append(error)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def payload(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


def make_config(**overrides) -> StorefrontConfig:
    settings = {
        "auth_token": "test-token",
        "env": "test",
        "json_logs": False,
        "log_level": "warning",
        "graphql_endpoint": GRAPHQL_ENDPOINT,
        "request_timeout_ms": 1000,
        "max_retries": 2,
        "retry_base_delay_ms": 10,
        "retry_max_delay_ms": 50,
    }
    settings.update(overrides)
    return StorefrontConfig(**settings)


@pytest.fixture
def config():
    """Test configuration that never reads real credentials."""
    return make_config()


@pytest.fixture
def graphql_server():
    """Scripted GraphQL endpoint."""
    return FakeGraphQLServer()


@pytest.fixture
def sleeps():
    """Delays requested by the retry link."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    """Records retry delays instead of waiting."""
    async def _sleep(delay):
        sleeps.append(delay)
    return _sleep


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config_factory():
    """Build a test configuration with overrides."""
    return make_config
