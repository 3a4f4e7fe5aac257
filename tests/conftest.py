"""
Pytest configuration and fixtures for FleetView tests.
"""
import os
import sys

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

# Set test environment before importing app
os.environ["DEBUG"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_OBC_COMMANDS"] = "false"
os.environ["ENABLE_AUTO_REFRESH"] = "false"
os.environ["PUBLIC_ORIGIN"] = ""

UPSTREAM = "http://upstream.test"


class FakeUpstream:
    """
    In-process stand-in for the fleet-telemetry API.

    Routes map (method, path) to a response or a callable returning one.
    Every request is recorded.
    """

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, response):
        self.routes[(method, path)] = response

    def json(self, method: str, path: str, payload, status_code: int = 200):
        self.add(method, path, httpx.Response(status_code, json=payload))

    def calls_to(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(route):
            return route(request)
        return route

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def upstream():
    """Fresh fake upstream per test."""
    return FakeUpstream()


@pytest.fixture
def api_client(upstream):
    """Transport client wired to the fake upstream."""
    from fleetview.services.api_client import FleetApiClient

    return FleetApiClient(UPSTREAM, client=upstream.async_client())
