"""
Tests for watchdog settings.

Bad configuration must stop the process before anything is scheduled.
"""

import pytest

from panel_watchdog.errors import ConfigError
from panel_watchdog.settings import WatchdogSettings


BASE_ENV = {
    "PANEL_URL": "https://panel.example.com",
    "API_KEY": "ptla_admin",
    "SERVERS": "srv-a,srv-b",
}


def env(**overrides):
    result = dict(BASE_ENV)
    for key, value in overrides.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = value
    return result


class TestFromEnv:

    def test_defaults(self):
        settings = WatchdogSettings.from_env(env())

        assert settings.servers == ("srv-a", "srv-b")
        assert settings.kill_after_seconds == 60
        assert settings.check_interval_seconds == 5
        assert settings.healthcheck_port == 3000
        assert settings.webhook_url is None
        assert settings.webhook_format == "embed"
        assert settings.notify_on_stop_detected is False
        assert settings.stale_after_seconds == 15

    def test_overrides(self):
        settings = WatchdogSettings.from_env(env(
            KILL_AFTER_SECONDS="90",
            CHECK_INTERVAL="2.5",
            HEALTHCHECK_PORT="8080",
            DISCORD_WEBHOOK_URL="https://discord.example.com/hook",
            WEBHOOK_FORMAT="TEXT",
            NOTIFY_ON_STOP_DETECTED="yes",
        ))

        assert settings.kill_after_seconds == 90
        assert settings.check_interval_seconds == 2.5
        assert settings.stale_after_seconds == 7.5
        assert settings.healthcheck_port == 8080
        assert settings.webhook_url == "https://discord.example.com/hook"
        assert settings.webhook_format == "text"
        assert settings.notify_on_stop_detected is True

    def test_trailing_slash_stripped(self):
        settings = WatchdogSettings.from_env(env(PANEL_URL="https://panel.example.com/"))
        assert settings.panel_url == "https://panel.example.com"

    def test_server_list_whitespace_and_blanks(self):
        settings = WatchdogSettings.from_env(env(SERVERS=" srv-a , ,srv-b,"))
        assert settings.servers == ("srv-a", "srv-b")

    def test_client_keys_parsed(self):
        settings = WatchdogSettings.from_env(env(
            API_KEY=None,
            CLIENT_KEYS="srv-a:ptlc_aaa, srv-b:ptlc_bbb",
        ))

        assert settings.has_application_key is False
        assert settings.client_key_for("srv-a") == "ptlc_aaa"
        assert settings.client_key_for("srv-b") == "ptlc_bbb"

    def test_empty_webhook_disables_notifications(self):
        settings = WatchdogSettings.from_env(env(DISCORD_WEBHOOK_URL=""))
        assert settings.webhook_url is None


class TestValidation:

    @pytest.mark.parametrize("missing", ["PANEL_URL", "SERVERS"])
    def test_required_keys(self, missing):
        with pytest.raises(ConfigError):
            WatchdogSettings.from_env(env(**{missing: None}))

    def test_empty_server_list(self):
        with pytest.raises(ConfigError, match="SERVERS"):
            WatchdogSettings.from_env(env(SERVERS=" , "))

    def test_duplicate_servers(self):
        with pytest.raises(ConfigError, match="duplicate"):
            WatchdogSettings.from_env(env(SERVERS="srv-a,srv-a"))

    def test_no_credentials(self):
        with pytest.raises(ConfigError, match="API_KEY"):
            WatchdogSettings.from_env(env(API_KEY=None))

    def test_client_key_missing_for_server(self):
        with pytest.raises(ConfigError) as exc_info:
            WatchdogSettings.from_env(env(CLIENT_KEYS="srv-a:ptlc_aaa"))

        assert "srv-b" in str(exc_info.value)
        assert "srv-a" not in str(exc_info.value).split(":")[-1]

    def test_malformed_client_key_entry(self):
        with pytest.raises(ConfigError, match="Malformed"):
            WatchdogSettings.from_env(env(CLIENT_KEYS="srv-a"))

    @pytest.mark.parametrize("key,value", [
        ("KILL_AFTER_SECONDS", "soon"),
        ("KILL_AFTER_SECONDS", "0"),
        ("CHECK_INTERVAL", "-5"),
        ("HEALTHCHECK_PORT", "http"),
        ("HEALTHCHECK_PORT", "70000"),
        ("WEBHOOK_FORMAT", "xml"),
        ("NOTIFY_ON_STOP_DETECTED", "maybe"),
    ])
    def test_malformed_values(self, key, value):
        with pytest.raises(ConfigError):
            WatchdogSettings.from_env(env(**{key: value}))

    def test_settings_frozen(self):
        settings = WatchdogSettings.from_env(env())

        with pytest.raises(AttributeError):
            settings.kill_after_seconds = 1
