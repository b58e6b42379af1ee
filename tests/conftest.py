"""Shared fixtures: a fake API/backend server behind httpx.MockTransport, settings, a manual clock."""

from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from fittrack_client.config import load_settings
from fittrack_client.context import AppContext

API_BASE = "http://api.test/api/v1"
BACKEND_BASE = "http://backend.test"

CONNECT_ERROR = "connect-error"
TIMEOUT = "timeout"

RouteValue = Union[Tuple[int, Any], str, Callable[[httpx.Request], Any]]


class FakeServer:
    """Routes (method, path) to canned responses and records every call."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], RouteValue] = {}
        self.calls: List[Tuple[str, str]] = []

    def on(self, method: str, path: str, value: RouteValue) -> None:
        self.routes[(method, path)] = value

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append(key)
        value = self.routes.get(key)
        if value is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(value):
            value = value(request)
        if value == CONNECT_ERROR:
            raise httpx.ConnectError("Connection refused", request=request)
        if value == TIMEOUT:
            raise httpx.ReadTimeout("timed out", request=request)
        status, body = value
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


ADMIN_ROW = {"id": 1, "first_name": "Ada", "last_name": "Admin", "email": "ada@example.com", "role": "admin"}
USER_ROW = {"id": 2, "first_name": "Uma", "last_name": "User", "email": "uma@example.com", "role": "user"}


@pytest.fixture
def server() -> FakeServer:
    fake = FakeServer()
    fake.on("GET", "/api/v1/auth/me", (200, {"success": False, "user": None}))
    fake.on("POST", "/api/v1/auth/logout", (200, {"success": True}))
    return fake


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_settings(monkeypatch):
    for name in ("API_BASE_URL", "BACKEND_URL", "BACKEND_ANON_KEY", "HEALTH_PROBE_PATHS"):
        monkeypatch.delenv(name, raising=False)

    def factory(**overrides):
        values = {
            "API_BASE_URL": API_BASE,
            "BACKEND_URL": BACKEND_BASE,
            "BACKEND_ANON_KEY": "anon-key",
            "STRATEGY_TIMEOUT_SECONDS": 1.0,
            "DEMO_USERS_TIMEOUT_SECONDS": 1.0,
        }
        values.update(overrides)
        return load_settings(**values)

    return factory


@pytest.fixture
async def context(server, make_settings):
    ctx = AppContext(make_settings(), transport=httpx.MockTransport(server))
    yield ctx
    await ctx.aclose()
