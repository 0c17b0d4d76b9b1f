"""
Pytest configuration and fixtures.

Shared fixtures for all tests.
"""

import pytest
from unittest.mock import Mock

from panel_watchdog.alert_dispatcher import AlertDispatcher
from panel_watchdog.panel_client import PanelClient, ServerState
from panel_watchdog.settings import WatchdogSettings


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class FakeTimerFactory:
    """Timer factory that records every timer it hands out."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def settings():
    """Minimal valid settings with per-server client keys."""
    return WatchdogSettings(
        panel_url="https://panel.example.com/",
        servers=("srv-x", "srv-y"),
        application_key="ptla_admin",
        client_keys={"srv-x": "ptlc_x", "srv-y": "ptlc_y"},
        kill_after_seconds=60,
        check_interval_seconds=5,
    )


@pytest.fixture
def mock_panel():
    """Panel client mock; every server is running unless told otherwise."""
    panel = Mock(spec=PanelClient)
    panel.get_state.return_value = ServerState.RUNNING
    panel.get_name.side_effect = lambda server_id: f"Server {server_id}"
    return panel


@pytest.fixture
def mock_alerter():
    return Mock(spec=AlertDispatcher)
