"""
Stop watchdog daemon.

Process driver: validates configuration, wires the collaborators,
serves the healthcheck and runs the reconciliation pass on a fixed
cadence until SIGTERM/SIGINT.

Key principles:
- Nothing starts unless configuration is complete
- Passes never overlap; a pass that overruns skips the ticks it missed
- On shutdown pending deadlines are cancelled, never fired; kills already
  in flight finish before the panel client is closed
"""

import argparse
import sys
import time
from typing import Callable, Optional
import structlog
from dotenv import load_dotenv

from panel_watchdog.alert_dispatcher import AlertDispatcher
from panel_watchdog.engine import StopWatchdog
from panel_watchdog.errors import ConfigError
from panel_watchdog.graceful_shutdown import GracefulShutdownHandler
from panel_watchdog.health_server import HealthServer
from panel_watchdog.liveness import LivenessReporter
from panel_watchdog.logging_setup import setup_logging
from panel_watchdog.panel_client import PanelClient
from panel_watchdog.settings import WatchdogSettings

logger = structlog.get_logger(__name__)


class WatchdogDaemon:
    """
    Owns the tick loop and the lifetime of every collaborator.

    Collaborators default to real implementations built from settings;
    tests pass their own.
    """

    def __init__(
        self,
        settings: WatchdogSettings,
        panel: Optional[PanelClient] = None,
        alerter: Optional[AlertDispatcher] = None,
        engine: Optional[StopWatchdog] = None,
        health_server: Optional[HealthServer] = None,
        shutdown_handler: Optional[GracefulShutdownHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.panel = panel or PanelClient(settings)
        self.alerter = alerter or AlertDispatcher(
            webhook_url=settings.webhook_url,
            webhook_format=settings.webhook_format,
            timeout_seconds=settings.request_timeout_seconds,
        )
        self.liveness = engine.liveness if engine else LivenessReporter()
        self.engine = engine or StopWatchdog(
            panel=self.panel,
            alerter=self.alerter,
            servers=settings.servers,
            kill_after_seconds=settings.kill_after_seconds,
            notify_on_stop_detected=settings.notify_on_stop_detected,
            liveness=self.liveness,
            drain_timeout_seconds=settings.request_timeout_seconds * 2,
        )
        self.health_server = health_server or HealthServer(
            self.liveness,
            stale_after_seconds=settings.stale_after_seconds,
            host=settings.healthcheck_host,
            port=settings.healthcheck_port,
        )
        self.shutdown = shutdown_handler or GracefulShutdownHandler()
        self._clock = clock

        # LIFO: timers are cancelled and in-flight kills drained before the
        # clients they use are closed
        self.shutdown.register_cleanup(self.panel.close)
        self.shutdown.register_cleanup(self.alerter.close)
        self.shutdown.register_cleanup(self.health_server.stop)
        self.shutdown.register_cleanup(self.engine.shutdown)

        self.ticks_run = 0
        self.ticks_skipped = 0

        logger.info(
            "watchdog_daemon_initialized",
            servers=list(settings.servers),
            kill_after_seconds=settings.kill_after_seconds,
            check_interval=settings.check_interval_seconds,
            healthcheck_port=settings.healthcheck_port,
            notifications=bool(settings.webhook_url),
        )

    def run(self) -> None:
        """
        Main loop - runs until shutdown is requested.

        Tick n is due at start + n * interval. When a pass runs past one
        or more due times those ticks are skipped, not queued.
        """
        interval = self.settings.check_interval_seconds

        self.health_server.start()
        logger.info("watchdog_daemon_starting")

        start = self._clock()
        tick = 0

        try:
            while not self.shutdown.should_shutdown():
                self.run_once()
                tick += 1

                now = self._clock()
                next_due = start + tick * interval
                if now > next_due:
                    missed = int((now - start) // interval) - tick + 1
                    tick += missed
                    self.ticks_skipped += missed
                    logger.warning(
                        "tick_skipped",
                        missed=missed,
                        overrun_seconds=round(now - (next_due - interval), 3),
                    )
                    next_due = start + tick * interval

                if self.shutdown.wait(max(0.0, next_due - now)):
                    break
        finally:
            self.stop()

    def run_once(self) -> None:
        """One reconciliation pass; never raises."""
        try:
            self.engine.reconcile()
        except Exception as e:
            logger.exception("watchdog_error", error=str(e))
        self.ticks_run += 1

    def stop(self) -> None:
        logger.info("watchdog_daemon_stopping")
        self.shutdown.request_shutdown()
        self.shutdown.run_cleanup()


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the watchdog process."""
    parser = argparse.ArgumentParser(
        description="Panel Stop Watchdog - force-kills servers stuck in 'stopping'",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (default: search from the working directory)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write logs to this file",
    )

    args = parser.parse_args(argv)

    load_dotenv(args.env_file)
    setup_logging(args.log_level, args.log_file)

    try:
        settings = WatchdogSettings.from_env()
    except ConfigError as e:
        logger.error("invalid_configuration", error=str(e))
        return 1

    daemon = WatchdogDaemon(settings)
    daemon.shutdown.install()

    try:
        daemon.run()
    except Exception as e:
        logger.exception("watchdog_crashed", error=str(e))
        return 1

    logger.info("watchdog_stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
