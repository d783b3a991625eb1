"""Pytest fixtures for Pi-hole Controls tests."""

from __future__ import annotations

import sys
from pathlib import Path

# Add repo root to path so custom_components can be found
REPO_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(REPO_ROOT))

import asyncio
from collections.abc import Callable, Iterator
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import importlib.util
import inspect
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

from homeassistant.util import dt as dt_util
import pytest

from custom_components.pihole_controls.api import ConnectionProfile, PiHoleApi
from custom_components.pihole_controls.session_cache import PiHoleSessionCache

# Load pytest_homeassistant_custom_component plugin if available
# This must be at module level for pytest to pick it up
if importlib.util.find_spec("pytest_homeassistant_custom_component"):
    pytest_plugins = ["pytest_homeassistant_custom_component"]

# Test constants - these are placeholders, not real credentials
TEST_HOST = "http://pi.hole"
TEST_LEGACY_TOKEN = "0123456789abcdef0123456789abcdef"
TEST_APP_PASSWORD = "Zm9vYmFyYmF6cXV4cXV1eGNvcmdlZ3JhdWx0Z2FycGx5"
TEST_ENTRY_ID = "test_entry_id"

# Check if pytest-homeassistant-custom-component is available
HAS_HA_TEST_FRAMEWORK = importlib.util.find_spec("pytest_homeassistant_custom_component") is not None

# Skip marker for tests requiring the HA test framework
requires_ha_test_framework = pytest.mark.skipif(
    not HAS_HA_TEST_FRAMEWORK,
    reason="Test requires pytest-homeassistant-custom-component",
)

Result = tuple[int, Any] | BaseException


@dataclass
class RecordedRequest:
    """One request seen by the fake Pi-hole."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    body: Any = None
    ssl: Any = None

    @property
    def auth_mode(self) -> str:
        """Infer how the credential was presented."""
        authorization = self.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            return "bearer"
        if authorization.startswith("Token "):
            return "token header"
        if "Cookie" in self.headers:
            return "session"
        if "auth" in self.params:
            return "query token"
        return "none"


class FakePiHole:
    """Scripted Pi-hole behind a mocked aiohttp session.

    Routes map (method, path) to either a list of results, consumed in order
    with the last one repeating, or a callable receiving the request.
    Unrouted requests answer 404.
    """

    def __init__(self) -> None:
        self.session = MagicMock()
        self.session.closed = False
        self.session.request.side_effect = self._request
        self.requests: list[RecordedRequest] = []
        self._routes: dict[tuple[str, str], list[Result] | Callable[[RecordedRequest], Result]] = {}

    def add(self, method: str, path: str, *results: Result) -> None:
        self._routes[(method, path)] = list(results)

    def add_handler(self, method: str, path: str, handler: Callable[[RecordedRequest], Result]) -> None:
        self._routes[(method, path)] = handler

    def requests_to(self, path: str) -> list[RecordedRequest]:
        return [request for request in self.requests if request.path == path]

    def _request(self, method: str, url: str, **kwargs: Any) -> AsyncMock:
        path = url.split("://", 1)[1].split("/", 1)[1]
        request = RecordedRequest(
            method=method,
            path=path,
            headers=dict(kwargs.get("headers") or {}),
            params=dict(kwargs.get("params") or {}),
            body=kwargs.get("json"),
            ssl=kwargs.get("ssl"),
        )
        self.requests.append(request)

        route = self._routes.get((method, path))
        if route is None:
            result: Result = (404, "")
        elif callable(route):
            result = route(request)
        else:
            result = route.pop(0) if len(route) > 1 else route[0]

        async_ctx = AsyncMock()
        if isinstance(result, BaseException):
            async_ctx.__aenter__.side_effect = result
        else:
            status, body = result
            response = MagicMock()
            response.status = status
            response.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
            async_ctx.__aenter__.return_value = response
        async_ctx.__aexit__.return_value = None
        return async_ctx


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_pihole() -> FakePiHole:
    """Return a fake Pi-hole with no routes (everything answers 404)."""
    return FakePiHole()


@pytest.fixture
def clock() -> FakeClock:
    """Return a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def session_cache(clock: FakeClock) -> PiHoleSessionCache:
    """Return a session cache driven by the fake clock."""
    return PiHoleSessionCache(clock=clock)


@pytest.fixture
def profile() -> ConnectionProfile:
    """Return a profile with a legacy-shaped token."""
    return ConnectionProfile(TEST_HOST, TEST_LEGACY_TOKEN)


@pytest.fixture
def api(profile: ConnectionProfile, fake_pihole: FakePiHole, session_cache: PiHoleSessionCache) -> PiHoleApi:
    """Return an API client talking to the fake Pi-hole."""
    return PiHoleApi(profile, session=fake_pihole.session, session_cache=session_cache)


def make_mock_client(enabled: bool = True) -> MagicMock:
    """Create a mock API client for coordinator tests."""
    client = MagicMock()
    client.fetch_status = AsyncMock(return_value=enabled)
    client.enable_blocking = AsyncMock(return_value=None)
    client.disable_blocking = AsyncMock(return_value=None)
    return client


def make_mock_hass() -> MagicMock:
    """Create a hass mock whose tasks run on the test event loop."""
    hass = MagicMock()
    hass.data = {}
    hass.is_stopping = False
    hass.async_create_task.side_effect = lambda target, name=None, eager_start=True: (
        asyncio.get_running_loop().create_task(target, name=name)
    )
    return hass


@dataclass
class ScheduledCall:
    """A timer registered through the Home Assistant event helpers."""

    delay: float | timedelta
    action: Callable[[datetime], Any]
    cancel: MagicMock = field(default_factory=MagicMock)

    @property
    def active(self) -> bool:
        return not self.cancel.called

    async def async_fire(self) -> None:
        """Run the action as the event helper would."""
        result = self.action(dt_util.utcnow())
        if inspect.isawaitable(result):
            await result


class FakeTimers:
    """Records async_call_later and async_track_time_interval registrations."""

    def __init__(self) -> None:
        self.later: list[ScheduledCall] = []
        self.intervals: list[ScheduledCall] = []

    def call_later(self, hass: Any, delay: float, action: Callable[[datetime], Any]) -> MagicMock:
        scheduled = ScheduledCall(delay, action)
        self.later.append(scheduled)
        return scheduled.cancel

    def track_time_interval(
        self, hass: Any, action: Callable[[datetime], Any], interval: timedelta, **kwargs: Any
    ) -> MagicMock:
        scheduled = ScheduledCall(interval, action)
        self.intervals.append(scheduled)
        return scheduled.cancel

    def active_later(self) -> list[ScheduledCall]:
        return [scheduled for scheduled in self.later if scheduled.active]

    def active_intervals(self) -> list[ScheduledCall]:
        return [scheduled for scheduled in self.intervals if scheduled.active]


TIMER_MODULES = (
    "custom_components.pihole_controls.coordinator",
    "custom_components.pihole_controls.connectivity",
)


@pytest.fixture
def timers() -> Iterator[FakeTimers]:
    """Capture timers instead of scheduling them on an event loop."""
    fake = FakeTimers()
    with contextlib.ExitStack() as stack:
        for module in TIMER_MODULES:
            stack.enter_context(patch(f"{module}.async_call_later", new=fake.call_later))
            stack.enter_context(patch(f"{module}.async_track_time_interval", new=fake.track_time_interval))
        yield fake


@pytest.fixture
def mock_hass() -> MagicMock:
    """Return a hass mock for unit tests."""
    return make_mock_hass()


if HAS_HA_TEST_FRAMEWORK:
    from pytest_homeassistant_custom_component.common import MockConfigEntry

    from custom_components.pihole_controls.const import CONF_ALLOW_SELF_SIGNED, CONF_API_TOKEN, CONF_HOST, DOMAIN

    @pytest.fixture(autouse=True)
    def auto_enable_custom_integrations(request):
        """Enable custom integrations for tests that run a hass instance."""
        if "hass" in request.fixturenames:
            request.getfixturevalue("enable_custom_integrations")
        yield

    @pytest.fixture
    def mock_config_entry() -> MockConfigEntry:
        """Create a MockConfigEntry for integration tests."""
        return MockConfigEntry(
            domain=DOMAIN,
            title=f"Pi-hole ({TEST_HOST})",
            unique_id=TEST_HOST,
            data={
                CONF_HOST: TEST_HOST,
                CONF_API_TOKEN: TEST_LEGACY_TOKEN,
                CONF_ALLOW_SELF_SIGNED: False,
            },
            entry_id=TEST_ENTRY_ID,
        )
