"""
Watchdog settings.

Read once at startup from the process environment (optionally seeded
from a .env file). Anything missing or malformed is a ConfigError and
the process never starts monitoring.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from panel_watchdog.errors import ConfigError


WEBHOOK_FORMATS = ("embed", "text")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class WatchdogSettings:
    """
    Watchdog configuration. FROZEN - never changes for the process lifetime.

    Credentials come in two flavours:
    - application_key: panel-wide admin key, used for reads of every server
    - client_keys: per-server keys, used for power actions (and for reads
      when no application key is configured)

    At least one must be configured. If any client keys are configured,
    every monitored server must have one.
    """

    # ==========================================================================
    # PANEL
    # ==========================================================================

    panel_url: str
    servers: tuple[str, ...]
    application_key: Optional[str] = None
    client_keys: Mapping[str, str] = field(default_factory=dict)
    request_timeout_seconds: float = 10.0

    # ==========================================================================
    # WATCHDOG TIMING
    # ==========================================================================

    # Time a server may sit in "stopping" before it gets a kill signal
    kill_after_seconds: float = 60.0

    # Reconciliation pass cadence
    check_interval_seconds: float = 5.0

    # ==========================================================================
    # NOTIFICATIONS
    # ==========================================================================

    webhook_url: Optional[str] = None
    webhook_format: str = "embed"
    notify_on_stop_detected: bool = False

    # ==========================================================================
    # HEALTHCHECK
    # ==========================================================================

    healthcheck_host: str = "0.0.0.0"
    healthcheck_port: int = 3000

    # Health turns stale after this many missed poll intervals
    stale_multiplier: float = 3.0

    def __post_init__(self):
        if not self.panel_url:
            raise ConfigError("PANEL_URL is required")
        if not self.servers:
            raise ConfigError("SERVERS must list at least one server id")
        if len(set(self.servers)) != len(self.servers):
            raise ConfigError("SERVERS contains duplicate server ids")
        if not self.application_key and not self.client_keys:
            raise ConfigError("Either API_KEY or CLIENT_KEYS must be set")

        if self.client_keys:
            missing = [s for s in self.servers if not self.client_keys.get(s)]
            if missing:
                raise ConfigError(
                    f"Missing CLIENT_KEYS for the following servers: {', '.join(missing)}"
                )

        if self.kill_after_seconds <= 0:
            raise ConfigError("KILL_AFTER_SECONDS must be positive")
        if self.check_interval_seconds <= 0:
            raise ConfigError("CHECK_INTERVAL must be positive")
        if self.request_timeout_seconds <= 0:
            raise ConfigError("PANEL_TIMEOUT_SECONDS must be positive")
        if self.stale_multiplier <= 0:
            raise ConfigError("HEALTHCHECK_STALE_MULTIPLIER must be positive")
        if not 0 < self.healthcheck_port < 65536:
            raise ConfigError(f"HEALTHCHECK_PORT out of range: {self.healthcheck_port}")
        if self.webhook_format not in WEBHOOK_FORMATS:
            raise ConfigError(
                f"WEBHOOK_FORMAT must be one of {', '.join(WEBHOOK_FORMATS)}, "
                f"got {self.webhook_format!r}"
            )

        # Normalise so URL joins never produce "//api"
        object.__setattr__(self, "panel_url", self.panel_url.rstrip("/"))

    @property
    def has_application_key(self) -> bool:
        return bool(self.application_key)

    @property
    def stale_after_seconds(self) -> float:
        """Age of the liveness mark after which /health reports STALE."""
        return self.check_interval_seconds * self.stale_multiplier

    def client_key_for(self, server_id: str) -> Optional[str]:
        return self.client_keys.get(server_id)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WatchdogSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigError: if anything required is missing or malformed
        """
        env = os.environ if environ is None else environ

        return cls(
            panel_url=env.get("PANEL_URL", "").strip(),
            servers=_parse_servers(env.get("SERVERS", "")),
            application_key=env.get("API_KEY") or None,
            client_keys=_parse_client_keys(env.get("CLIENT_KEYS", "")),
            request_timeout_seconds=_parse_float(env, "PANEL_TIMEOUT_SECONDS", 10.0),
            kill_after_seconds=_parse_float(env, "KILL_AFTER_SECONDS", 60.0),
            check_interval_seconds=_parse_float(env, "CHECK_INTERVAL", 5.0),
            webhook_url=env.get("DISCORD_WEBHOOK_URL") or None,
            webhook_format=env.get("WEBHOOK_FORMAT", "embed").strip().lower(),
            notify_on_stop_detected=_parse_bool(env, "NOTIFY_ON_STOP_DETECTED", False),
            healthcheck_host=env.get("HEALTHCHECK_HOST", "0.0.0.0"),
            healthcheck_port=_parse_int(env, "HEALTHCHECK_PORT", 3000),
            stale_multiplier=_parse_float(env, "HEALTHCHECK_STALE_MULTIPLIER", 3.0),
        )


def _parse_servers(raw: str) -> tuple[str, ...]:
    return tuple(s.strip() for s in raw.split(",") if s.strip())


def _parse_client_keys(raw: str) -> dict[str, str]:
    """
    Parse CLIENT_KEYS.

    Format: serverId:ptlc_xxx,serverId2:ptlc_yyy
    """
    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue

        server_id, sep, key = entry.partition(":")
        server_id, key = server_id.strip(), key.strip()
        if not sep or not server_id or not key:
            raise ConfigError(f"Malformed CLIENT_KEYS entry: {server_id or entry!r}")
        keys[server_id] = key
    return keys


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")
