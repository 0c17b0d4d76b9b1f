"""
Graceful shutdown handler for the watchdog process.

On SIGTERM/SIGINT the handler flags shutdown and wakes the tick loop.
Cleanup callbacks (cancel pending deadlines, stop the healthcheck,
close HTTP clients) run once, in reverse registration order, from the
main loop rather than from inside the signal handler.
"""

import signal
import threading
from typing import Callable
import structlog

logger = structlog.get_logger(__name__)


class GracefulShutdownHandler:
    """
    Handles SIGTERM for graceful shutdown.

    Usage:
        handler = GracefulShutdownHandler()
        handler.register_cleanup(engine.shutdown)
        handler.install()

        while not handler.should_shutdown():
            # do work
            handler.wait(interval)

        handler.run_cleanup()
    """

    def __init__(self):
        self._event = threading.Event()
        self._cleanup_callbacks: list[Callable] = []
        self._cleanup_done = False

    @property
    def shutdown_requested(self) -> bool:
        return self._event.is_set()

    def register_cleanup(self, callback: Callable) -> None:
        """
        Register a cleanup callback to run on shutdown.

        Callbacks are run in reverse order of registration (LIFO).
        """
        self._cleanup_callbacks.append(callback)

    def install(self) -> None:
        """Install handlers for SIGTERM and SIGINT."""
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        logger.info("signal_handlers_installed")

    def _handle_signal(self, signum: int, frame) -> None:
        signal_name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=signal_name)
        self.request_shutdown()

    def request_shutdown(self) -> None:
        self._event.set()

    def should_shutdown(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """
        Sleep up to timeout seconds, waking early on shutdown.

        Returns:
            True if shutdown was requested
        """
        return self._event.wait(timeout)

    def run_cleanup(self) -> None:
        """Run registered callbacks once. Errors are logged and skipped."""
        if self._cleanup_done:
            return
        self._cleanup_done = True

        logger.info("running_cleanup_callbacks", count=len(self._cleanup_callbacks))

        for callback in reversed(self._cleanup_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error("cleanup_callback_error", error=str(e))

        logger.info("graceful_shutdown_complete")
