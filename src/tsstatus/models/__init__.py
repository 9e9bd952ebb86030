"""Data models for voice server snapshots, clients, channels and departures."""

from tsstatus.models.channel import Channel
from tsstatus.models.client import UNKNOWN_CHANNEL, AudioState, VoiceClient, format_duration
from tsstatus.models.departure import Departure
from tsstatus.models.snapshot import ServerSnapshot

__all__ = [
    "AudioState",
    "Channel",
    "Departure",
    "ServerSnapshot",
    "UNKNOWN_CHANNEL",
    "VoiceClient",
    "format_duration",
]
