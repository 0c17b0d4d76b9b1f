"""
Panel API client for the watchdog.

Thin wrapper over the Pterodactyl REST API: read a server's current
state, read its display name, send it a kill signal. Every call is a
single attempt; failures surface as TransientAPIError and the caller
decides what to do.
"""

from enum import Enum
from typing import Optional
import httpx
import structlog

from panel_watchdog.errors import TransientAPIError
from panel_watchdog.settings import WatchdogSettings

logger = structlog.get_logger(__name__)

PTERODACTYL_ACCEPT = "Application/vnd.pterodactyl.v1+json"


class ServerState(Enum):
    """Lifecycle state as reported by the panel."""
    RUNNING = "running"
    STARTING = "starting"
    STOPPING = "stopping"
    OFFLINE = "offline"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ServerState":
        """Map a panel state string onto the enum; unknown values become OTHER."""
        if not raw:
            return cls.OTHER
        try:
            return cls(str(raw).lower())
        except ValueError:
            return cls.OTHER


class PanelClient:
    """
    Panel client for watchdog operations.

    Reads go through the application API when an application key is
    configured, otherwise through the client API with the server's own key.
    Power actions always go through the client API.
    """

    def __init__(
        self,
        settings: WatchdogSettings,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize panel client.

        Args:
            settings: Watchdog settings (panel URL, credentials, timeout)
            http_client: Preconfigured httpx client (tests inject a mock transport)
        """
        self.settings = settings
        self.http = http_client or httpx.Client(timeout=settings.request_timeout_seconds)

        logger.info(
            "panel_client_initialized",
            panel_url=settings.panel_url,
            read_api="application" if settings.has_application_key else "client",
        )

    def get_state(self, server_id: str) -> ServerState:
        """Fetch the server's current lifecycle state."""
        url = self._read_url(server_id, "/resources")
        data = self._request("GET", url, self._read_key(server_id))
        raw_state = self._attribute(data, "current_state", "GET", url)
        return ServerState.parse(raw_state)

    def get_name(self, server_id: str) -> str:
        """Fetch the server's display name."""
        url = self._read_url(server_id)
        data = self._request("GET", url, self._read_key(server_id))
        return str(self._attribute(data, "name", "GET", url))

    def force_kill(self, server_id: str) -> None:
        """
        Send the kill power signal.

        WARNING: Irreversible. The watchdog only calls this from an
        expired deadline.
        """
        url = f"{self.settings.panel_url}/api/client/servers/{server_id}/power"
        key = self.settings.client_key_for(server_id) or self.settings.application_key

        logger.warning("panel_sending_kill_signal", server_id=server_id)
        self._request("POST", url, key, json={"signal": "kill"})

    def close(self) -> None:
        self.http.close()

    # ==========================================================================
    # INTERNALS
    # ==========================================================================

    def _read_url(self, server_id: str, suffix: str = "") -> str:
        api = "application" if self.settings.has_application_key else "client"
        return f"{self.settings.panel_url}/api/{api}/servers/{server_id}{suffix}"

    def _read_key(self, server_id: str) -> Optional[str]:
        if self.settings.has_application_key:
            return self.settings.application_key
        return self.settings.client_key_for(server_id)

    def _request(
        self,
        method: str,
        url: str,
        api_key: Optional[str],
        json: Optional[dict] = None,
    ) -> Optional[dict]:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": PTERODACTYL_ACCEPT,
            "Content-Type": "application/json",
        }

        try:
            response = self.http.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise TransientAPIError(
                f"{type(e).__name__}: {e}",
                method=method,
                url=url,
            ) from e

        if response.is_error:
            raise TransientAPIError(
                f"Panel returned HTTP {response.status_code}",
                method=method,
                url=url,
                status_code=response.status_code,
                body=response.text,
            )

        # Power actions answer 204 No Content
        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise TransientAPIError(
                "Panel returned a non-JSON body",
                method=method,
                url=url,
                status_code=response.status_code,
                body=response.text,
            ) from e

    def _attribute(self, data: Optional[dict], key: str, method: str, url: str):
        try:
            return data["attributes"][key]
        except (KeyError, TypeError):
            raise TransientAPIError(
                f"Panel response missing attributes.{key}",
                method=method,
                url=url,
                body=str(data)[:500],
            ) from None
