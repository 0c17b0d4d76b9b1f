"""
Tests for the watchdog daemon (process driver).

The tick loop is driven by a fake clock; nothing sleeps for real.
"""

import pytest
from unittest.mock import Mock

from panel_watchdog import daemon as daemon_module
from panel_watchdog.daemon import WatchdogDaemon, main
from panel_watchdog.engine import StopWatchdog
from panel_watchdog.graceful_shutdown import GracefulShutdownHandler
from panel_watchdog.health_server import HealthServer
from panel_watchdog.liveness import LivenessReporter


class SteppingShutdown(GracefulShutdownHandler):
    """Shutdown handler whose wait() advances the fake clock instead of sleeping."""

    def __init__(self, clock, max_waits):
        super().__init__()
        self.clock = clock
        self.max_waits = max_waits
        self.waits = []

    def wait(self, timeout):
        self.waits.append(timeout)
        self.clock.advance(timeout)
        if len(self.waits) >= self.max_waits:
            self.request_shutdown()
        return self.should_shutdown()


@pytest.fixture
def make_daemon(settings, mock_panel, mock_alerter, fake_clock):
    def _make(pass_durations, max_waits=3):
        durations = iter(pass_durations)

        engine = Mock(spec=StopWatchdog)
        engine.liveness = LivenessReporter(clock=fake_clock)
        engine.reconcile.side_effect = lambda: fake_clock.advance(next(durations, 1))

        return WatchdogDaemon(
            settings,
            panel=mock_panel,
            alerter=mock_alerter,
            engine=engine,
            health_server=Mock(spec=HealthServer),
            shutdown_handler=SteppingShutdown(fake_clock, max_waits),
            clock=fake_clock,
        )
    return _make


class TestTickLoop:

    def test_fixed_cadence(self, make_daemon):
        daemon = make_daemon(pass_durations=[1, 1, 1])

        daemon.run()

        assert daemon.shutdown.waits == [4, 4, 4]
        assert daemon.ticks_run == 3
        assert daemon.ticks_skipped == 0

    def test_overrunning_pass_skips_missed_ticks(self, make_daemon):
        """A 12s pass at a 5s interval misses the ticks due at 5s and 10s."""
        daemon = make_daemon(pass_durations=[12, 1], max_waits=2)

        daemon.run()

        assert daemon.ticks_skipped == 2
        # Next tick lands back on the grid at 15s, then 20s
        assert daemon.shutdown.waits == [3, 4]

    def test_pass_errors_do_not_stop_loop(self, make_daemon):
        daemon = make_daemon(pass_durations=[], max_waits=3)
        daemon.engine.reconcile.side_effect = RuntimeError("boom")

        daemon.run()

        assert daemon.ticks_run == 3

    def test_shutdown_runs_cleanup(self, make_daemon, mock_panel, mock_alerter):
        daemon = make_daemon(pass_durations=[1], max_waits=1)

        daemon.run()

        daemon.health_server.start.assert_called_once()
        daemon.health_server.stop.assert_called_once()
        daemon.engine.shutdown.assert_called_once()
        mock_panel.close.assert_called_once()
        mock_alerter.close.assert_called_once()

    def test_no_pass_after_shutdown_requested(self, make_daemon):
        daemon = make_daemon(pass_durations=[1])
        daemon.shutdown.request_shutdown()

        daemon.run()

        daemon.engine.reconcile.assert_not_called()
        daemon.engine.shutdown.assert_called_once()


class TestMain:

    @pytest.fixture(autouse=True)
    def quiet(self, monkeypatch):
        monkeypatch.setattr(daemon_module, "setup_logging", lambda *args, **kwargs: None)
        monkeypatch.setattr(daemon_module, "load_dotenv", lambda *args, **kwargs: False)

    def test_missing_config_exits_nonzero(self, monkeypatch):
        for key in ("PANEL_URL", "API_KEY", "CLIENT_KEYS", "SERVERS"):
            monkeypatch.delenv(key, raising=False)

        started = Mock()
        monkeypatch.setattr(daemon_module, "WatchdogDaemon", started)

        assert main([]) == 1
        started.assert_not_called()

    def test_missing_client_key_exits_nonzero(self, monkeypatch):
        monkeypatch.setenv("PANEL_URL", "https://panel.example.com")
        monkeypatch.setenv("API_KEY", "ptla_admin")
        monkeypatch.setenv("SERVERS", "srv-a,srv-b")
        monkeypatch.setenv("CLIENT_KEYS", "srv-a:ptlc_aaa")

        started = Mock()
        monkeypatch.setattr(daemon_module, "WatchdogDaemon", started)

        assert main([]) == 1
        started.assert_not_called()

    def test_valid_config_runs_daemon(self, monkeypatch):
        monkeypatch.setenv("PANEL_URL", "https://panel.example.com")
        monkeypatch.setenv("API_KEY", "ptla_admin")
        monkeypatch.setenv("SERVERS", "srv-a")
        monkeypatch.delenv("CLIENT_KEYS", raising=False)

        daemon_cls = Mock()
        monkeypatch.setattr(daemon_module, "WatchdogDaemon", daemon_cls)

        assert main(["--log-level", "DEBUG"]) == 0

        settings = daemon_cls.call_args.args[0]
        assert settings.servers == ("srv-a",)
        daemon_cls.return_value.shutdown.install.assert_called_once()
        daemon_cls.return_value.run.assert_called_once()
