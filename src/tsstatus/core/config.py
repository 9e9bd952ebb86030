"""Configuration manager using QSettings for persistent storage."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)

# Query connection
_KEY_HOST = "query/host"
_KEY_PORT = "query/port"
_KEY_SERVER_PORT = "query/server_port"
_KEY_USERNAME = "query/username"
_KEY_PASSWORD = "query/password"  # noqa: S105
_KEY_NICKNAME = "query/nickname"

# Monitoring
_KEY_POLL_INTERVAL = "monitor/poll_interval"
_KEY_FORCED_REFRESH = "monitor/forced_refresh"

DEFAULT_QUERY_PORT = 10022
DEFAULT_SERVER_PORT = 9987
DEFAULT_NICKNAME = "TS-Status"
DEFAULT_POLL_INTERVAL = 30
DEFAULT_FORCED_REFRESH = 30

# Environment variable -> settings key
_ENV_STRINGS: dict[str, str] = {
    "TS_HOST": _KEY_HOST,
    "TS_QUERY_USERNAME": _KEY_USERNAME,
    "TS_QUERY_PASSWORD": _KEY_PASSWORD,
    "TS_QUERY_NICKNAME": _KEY_NICKNAME,
}

_ENV_INTEGERS: dict[str, str] = {
    "TS_QUERY_PORT": _KEY_PORT,
    "TS_SERVER_PORT": _KEY_SERVER_PORT,
    "REFRESH_INTERVAL_SECONDS": _KEY_POLL_INTERVAL,
    "FORCED_REFRESH_SECONDS": _KEY_FORCED_REFRESH,
}

_REQUIRED: dict[str, str] = {
    _KEY_HOST: "TS_HOST",
    _KEY_USERNAME: "TS_QUERY_USERNAME",
    _KEY_PASSWORD: "TS_QUERY_PASSWORD",
}


def _clamp_port(value: int) -> int:
    return max(1, min(65535, value))


@dataclass(frozen=True)
class QuerySettings:
    """Connection and polling settings for one monitor.

    Attributes:
        host: ServerQuery host.
        port: ServerQuery SSH port.
        server_port: Voice port of the virtual server to select.
        username: Query login name.
        password: Query login password.
        nickname: Display name announced by the query session.
        poll_interval: Seconds between polls.
        forced_refresh: Seconds after which an unchanged snapshot is republished.
    """

    host: str
    port: int = DEFAULT_QUERY_PORT
    server_port: int = DEFAULT_SERVER_PORT
    username: str = ""
    password: str = ""
    nickname: str = DEFAULT_NICKNAME
    poll_interval: int = DEFAULT_POLL_INTERVAL
    forced_refresh: int = DEFAULT_FORCED_REFRESH

    def __repr__(self) -> str:
        """Return a representation without the password."""
        return (
            f"QuerySettings(host={self.host!r}, port={self.port}, "
            f"server_port={self.server_port}, username={self.username!r}, "
            f"nickname={self.nickname!r}, poll_interval={self.poll_interval}, "
            f"forced_refresh={self.forced_refresh})"
        )


class ConfigManager:
    """Wrapper around QSettings for type-safe config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\TSStatus\\TSStatus
    - macOS: ~/Library/Preferences/com.TSStatus.TSStatus.plist
    - Linux: ~/.config/TSStatus/TSStatus.conf

    Environment variables (see apply_environment) override stored values.

    Example:
        config = ConfigManager()
        config.apply_environment(os.environ)
        settings = config.get_query_settings()
    """

    def __init__(self, organization: str = "TSStatus", application: str = "TSStatus") -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
        """
        self._settings = QSettings(organization, application)
        # Environment values live in memory only, never written to disk
        self._overrides: dict[str, str | int] = {}

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    def _set(self, key: str, value: str | int) -> None:
        self._overrides.pop(key, None)
        self._settings.setValue(key, value)

    def _get_str(self, key: str, default: str = "") -> str:
        if key in self._overrides:
            value: object = self._overrides[key]
        else:
            value = self._settings.value(key, default, str)
        return str(value) if value else default

    def _get_int(self, key: str, default: int) -> int:
        if key in self._overrides:
            value: object = self._overrides[key]
        else:
            value = self._settings.value(key, default, int)
        try:
            return int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default

    # -- Query connection ------------------------------------------------------

    def get_host(self) -> str:
        """Return the ServerQuery host, or empty string if unset."""
        return self._get_str(_KEY_HOST)

    def set_host(self, host: str) -> None:
        """Set the ServerQuery host."""
        self._set(_KEY_HOST, host)

    def get_port(self) -> int:
        """Return the ServerQuery SSH port (default 10022)."""
        return _clamp_port(self._get_int(_KEY_PORT, DEFAULT_QUERY_PORT))

    def set_port(self, port: int) -> None:
        """Set the ServerQuery SSH port (1-65535)."""
        self._set(_KEY_PORT, _clamp_port(port))

    def get_server_port(self) -> int:
        """Return the voice port of the virtual server (default 9987)."""
        return _clamp_port(self._get_int(_KEY_SERVER_PORT, DEFAULT_SERVER_PORT))

    def set_server_port(self, port: int) -> None:
        """Set the voice port of the virtual server (1-65535)."""
        self._set(_KEY_SERVER_PORT, _clamp_port(port))

    def get_username(self) -> str:
        """Return the query login name."""
        return self._get_str(_KEY_USERNAME)

    def set_username(self, username: str) -> None:
        """Set the query login name."""
        self._set(_KEY_USERNAME, username)

    def get_password(self) -> str:
        """Return the query login password."""
        return self._get_str(_KEY_PASSWORD)

    def set_password(self, password: str) -> None:
        """Set the query login password."""
        self._set(_KEY_PASSWORD, password)

    def get_nickname(self) -> str:
        """Return the nickname announced by the query session."""
        return self._get_str(_KEY_NICKNAME, DEFAULT_NICKNAME)

    def set_nickname(self, nickname: str) -> None:
        """Set the nickname announced by the query session."""
        self._set(_KEY_NICKNAME, nickname)

    # -- Monitoring settings ---------------------------------------------------

    def get_poll_interval(self) -> int:
        """Return the poll interval in seconds.

        Returns:
            Interval in seconds (default 30, range 5-3600).
        """
        return max(5, min(3600, self._get_int(_KEY_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)))

    def set_poll_interval(self, seconds: int) -> None:
        """Set the poll interval (5-3600 seconds)."""
        self._set(_KEY_POLL_INTERVAL, max(5, min(3600, seconds)))

    def get_forced_refresh(self) -> int:
        """Return the heartbeat republish interval in seconds.

        Returns:
            Interval in seconds (default 30, range 5-86400).
        """
        return max(5, min(86400, self._get_int(_KEY_FORCED_REFRESH, DEFAULT_FORCED_REFRESH)))

    def set_forced_refresh(self, seconds: int) -> None:
        """Set the heartbeat republish interval (5-86400 seconds)."""
        self._set(_KEY_FORCED_REFRESH, max(5, min(86400, seconds)))

    # -- Environment -----------------------------------------------------------

    def apply_environment(self, environ: Mapping[str, str]) -> None:
        """Override settings from environment variables.

        Blank variables are ignored. Numeric variables that do not parse
        are logged and ignored.

        Args:
            environ: Environment mapping, usually os.environ.
        """
        for name, key in _ENV_STRINGS.items():
            value = environ.get(name, "").strip()
            if value:
                self._overrides[key] = value

        for name, key in _ENV_INTEGERS.items():
            raw = environ.get(name, "").strip()
            if not raw:
                continue
            try:
                self._overrides[key] = int(raw)
            except ValueError:
                logger.warning("Ignoring %s: %r is not a number", name, raw)

    def missing_required(self) -> list[str]:
        """Return environment names of required settings that are unset."""
        return [env for key, env in _REQUIRED.items() if not self._get_str(key)]

    def get_query_settings(self) -> QuerySettings:
        """Return a snapshot of the connection and polling settings."""
        return QuerySettings(
            host=self.get_host(),
            port=self.get_port(),
            server_port=self.get_server_port(),
            username=self.get_username(),
            password=self.get_password(),
            nickname=self.get_nickname(),
            poll_interval=self.get_poll_interval(),
            forced_refresh=self.get_forced_refresh(),
        )

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings and overrides (useful for testing or reset)."""
        self._overrides.clear()
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
