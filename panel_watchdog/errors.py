"""
Error taxonomy for the stop watchdog.

- ConfigError: fatal, startup only
- TransientAPIError: a single panel call failed, re-evaluated next tick
- NotificationError: webhook delivery failed, logged and dropped
"""

from typing import Optional


class WatchdogError(Exception):
    """Base class for all watchdog errors."""


class ConfigError(WatchdogError):
    """Missing or malformed required settings."""


class TransientAPIError(WatchdogError):
    """
    A panel API call failed.

    Carries whatever diagnostics were available at the point of failure
    so the log line alone is enough to see what went wrong.
    """

    def __init__(
        self,
        message: str,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body

    def as_log_context(self) -> dict:
        """Key/value context for structured log calls."""
        context = {
            "error": str(self),
            "method": self.method,
            "url": self.url,
        }
        if self.status_code is not None:
            context["status_code"] = self.status_code
        if self.body:
            context["body"] = self.body[:500]
        return context


class NotificationError(WatchdogError):
    """Webhook delivery failed."""
