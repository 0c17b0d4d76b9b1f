"""
Alert dispatcher for the watchdog.

Posts watchdog events to a Discord-style webhook. Delivery is
fire-and-forget: failures are logged and dropped so a broken webhook
can never affect what the watchdog does to servers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import httpx
import structlog

from panel_watchdog.errors import NotificationError

logger = structlog.get_logger(__name__)


class EventKind(Enum):
    """Watchdog event categories."""
    DETECTED = "detected"
    KILLED = "killed"
    RECOVERED = "recovered"


# title, emoji, embed color
_EVENT_STYLE = {
    EventKind.DETECTED: ("Server Stop Detected", "⏰", 0xF1C40F),
    EventKind.KILLED: ("Server Force Killed", "💀", 0xE74C3C),
    EventKind.RECOVERED: ("Server Stopped Normally", "✅", 0x2ECC71),
}


@dataclass(frozen=True)
class WatchdogEvent:
    """A single thing worth telling a human about."""
    kind: EventKind
    server_id: str
    name: str
    timeout_seconds: Optional[float] = None

    @property
    def title(self) -> str:
        return _EVENT_STYLE[self.kind][0]

    @property
    def color(self) -> int:
        return _EVENT_STYLE[self.kind][2]

    def to_text(self) -> str:
        """Plain markdown message."""
        emoji = _EVENT_STYLE[self.kind][1]
        lines = [
            f"{emoji} **{self.title}**",
            f"**Name:** {self.name}",
            f"**ID:** `{self.server_id}`",
        ]
        if self.timeout_seconds is not None:
            lines.append(f"**Timeout:** {_format_seconds(self.timeout_seconds)}")
        return "\n".join(lines)

    def to_embed(self) -> dict:
        fields = [
            {"name": "Name", "value": self.name, "inline": True},
            {"name": "ID", "value": f"`{self.server_id}`", "inline": True},
        ]
        if self.timeout_seconds is not None:
            fields.append({
                "name": "Timeout",
                "value": _format_seconds(self.timeout_seconds),
                "inline": True,
            })
        return {
            "title": self.title,
            "color": self.color,
            "fields": fields,
        }


def _format_seconds(seconds: float) -> str:
    return f"{seconds:g}s"


class AlertDispatcher:
    """
    Dispatches watchdog events to the configured webhook.

    Every event is logged. Events are only posted when a webhook URL is
    configured; without one the dispatcher is log-only.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        webhook_format: str = "embed",
        timeout_seconds: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize alert dispatcher.

        Args:
            webhook_url: Webhook URL; None disables delivery
            webhook_format: "embed" (rich) or "text" (content only)
            timeout_seconds: HTTP timeout for a single delivery
            http_client: Preconfigured httpx client (tests inject a mock transport)
        """
        self.webhook_url = webhook_url
        self.webhook_format = webhook_format
        self.http = http_client or httpx.Client(timeout=timeout_seconds)

        logger.info(
            "alert_dispatcher_initialized",
            has_webhook=bool(self.webhook_url),
            webhook_format=webhook_format,
        )

    def notify(self, event: WatchdogEvent) -> bool:
        """
        Log the event and post it to the webhook.

        Never raises.

        Returns:
            True if the webhook accepted the message
        """
        log_method = logger.warning if event.kind == EventKind.KILLED else logger.info
        log_method(
            "watchdog_event",
            kind=event.kind.value,
            server_id=event.server_id,
            name=event.name,
            timeout_seconds=event.timeout_seconds,
        )

        if not self.webhook_url:
            return False

        try:
            self._send_webhook(event)
        except NotificationError as e:
            logger.error(
                "webhook_delivery_failed",
                kind=event.kind.value,
                server_id=event.server_id,
                error=str(e),
            )
            return False

        logger.debug("webhook_delivered", kind=event.kind.value, server_id=event.server_id)
        return True

    def _build_payload(self, event: WatchdogEvent) -> dict:
        payload = {"content": event.to_text()}
        if self.webhook_format == "embed":
            payload = {
                "content": f"{_EVENT_STYLE[event.kind][1]} **{event.title}**",
                "embeds": [event.to_embed()],
            }
        return payload

    def _send_webhook(self, event: WatchdogEvent) -> None:
        try:
            response = self.http.post(self.webhook_url, json=self._build_payload(event))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(str(e)) from e

    def close(self) -> None:
        self.http.close()
