"""tsstatus - TeamSpeak voice server status monitor."""

__version__ = "0.1.0"
