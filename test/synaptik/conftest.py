"""
Shared fixtures for the Synaptik MCP test suite.

Provides an in-memory stand-in for the Synaptik dependency endpoints, an API
client wired to httpx.MockTransport, and isolation from SYNAPTIK_* variables
set in the developer's environment.
"""

import asyncio
import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
import tzlocal.unix

from synaptik_mcp.client import SynaptikApiClient
from synaptik_mcp.config import ENV_VARS, Settings, reset_settings
from synaptik_mcp.linking import DependencyRef, EdgeCallResult, EdgeKind
from synaptik_mcp.monitoring import CallMonitor


class FakeEdgeService:
    """
    Scriptable DependencyEdgeService.

    Per target id it can return a status code, raise an exception, or wait
    before answering. Records every call, the order calls finished in, and
    the peak number of calls in flight.
    """

    def __init__(
        self,
        statuses: Optional[Dict[str, int]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        delays: Optional[Dict[str, float]] = None,
        dependencies: Optional[List[DependencyRef]] = None,
        list_error: Optional[Exception] = None,
        default_delay: float = 0.0,
    ):
        self.statuses = statuses or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.dependencies = dependencies or []
        self.list_error = list_error
        self.default_delay = default_delay
        self.calls: List[tuple] = []
        self.completed: List[str] = []
        self.cancelled: List[str] = []
        self.list_calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _call(self, kind: EdgeKind, primary_id: str, other_id: str) -> EdgeCallResult:
        self.calls.append((kind, primary_id, other_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(other_id, self.default_delay))
            if other_id in self.errors:
                raise self.errors[other_id]
            self.completed.append(other_id)
            return EdgeCallResult(status_code=self.statuses.get(other_id, 200))
        except asyncio.CancelledError:
            self.cancelled.append(other_id)
            raise
        finally:
            self.in_flight -= 1

    async def link_edge(self, primary_id: str, other_id: str) -> EdgeCallResult:
        return await self._call(EdgeKind.LINK, primary_id, other_id)

    async def unlink_edge(self, primary_id: str, other_id: str) -> EdgeCallResult:
        return await self._call(EdgeKind.UNLINK, primary_id, other_id)

    async def list_dependencies(self, primary_id: str) -> List[DependencyRef]:
        self.list_calls.append(primary_id)
        if self.list_error is not None:
            raise self.list_error
        return list(self.dependencies)


class MockSynaptikApi:
    """
    Route table for httpx.MockTransport.

    Routes map (method, path) to a status code and JSON body; unmatched
    requests get 404. Every request is recorded.
    """

    def __init__(self):
        self.routes: Dict[tuple, tuple] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, body=None):
        self.routes[(method.upper(), path)] = (status, body)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {"error": "not found"}))
        if isinstance(body, Exception):
            raise body
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, content=json.dumps(body).encode(),
                              headers={"Content-Type": "application/json"})

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep SYNAPTIK_* variables and cached settings from leaking into tests."""
    for env_name in ENV_VARS:
        monkeypatch.delenv(env_name, raising=False)
    # tzlocal caches the local zone name per process; start each test uncached.
    monkeypatch.setattr(tzlocal.unix, "_cache_tz_name", None)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    return Settings(api_url="http://synaptik.test", timezone="Europe/Berlin")


@pytest.fixture
def edge_service_factory() -> Callable[..., FakeEdgeService]:
    return FakeEdgeService


@pytest.fixture
def mock_api() -> MockSynaptikApi:
    return MockSynaptikApi()


@pytest_asyncio.fixture
async def api_client(mock_api):
    """SynaptikApiClient talking to the mock route table."""
    client = SynaptikApiClient(
        base_url="http://synaptik.test",
        transport=httpx.MockTransport(mock_api.handler),
        monitor=CallMonitor(),
    )
    yield client
    await client.aclose()


def uid(n: int) -> str:
    """Deterministic UUID for test data."""
    return f"00000000-0000-4000-8000-{n:012d}"
