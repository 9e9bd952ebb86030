"""VoiceClient model representing a user connected to the voice server."""

import enum
from dataclasses import dataclass

UNKNOWN_CHANNEL = "Unknown channel"

_SECONDS_PER_MINUTE = 60
_SECONDS_PER_HOUR = 3600


def format_duration(ms: int | None) -> str:
    """Format a connected duration in milliseconds for display."""
    if ms is None or ms < 0:
        return "unknown"

    total_seconds = ms // 1000
    hours = total_seconds // _SECONDS_PER_HOUR
    minutes = (total_seconds % _SECONDS_PER_HOUR) // _SECONDS_PER_MINUTE
    seconds = total_seconds % _SECONDS_PER_MINUTE

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


class AudioState(enum.Enum):
    """Effective audio state derived from the two mute flags.

    Output mute (deafened) dominates input mute.
    """

    DEAFENED = "deafened"
    MUTED = "muted"
    UNMUTED = "unmuted"

    @classmethod
    def from_flags(cls, input_muted: bool, output_muted: bool) -> "AudioState":
        """Derive the audio state from input/output mute flags."""
        if output_muted:
            return cls.DEAFENED
        if input_muted:
            return cls.MUTED
        return cls.UNMUTED


@dataclass(frozen=True, slots=True)
class VoiceClient:
    """A user session on the voice server.

    Attributes:
        id: Session client id (only stable for one connection).
        unique_id: Stable identity of the user across reconnects.
        name: Display nickname.
        channel_id: ID of the channel the user is in.
        channel_name: Resolved channel name.
        input_muted: Microphone muted or disabled.
        output_muted: Speakers muted or disabled.
        away: Away flag set.
        streaming: Streaming or recording.
        connected_ms: Connected duration in milliseconds, None if unknown.
    """

    id: str
    unique_id: str
    name: str
    channel_id: str = ""
    channel_name: str = UNKNOWN_CHANNEL
    input_muted: bool = False
    output_muted: bool = False
    away: bool = False
    streaming: bool = False
    connected_ms: int | None = None

    @property
    def audio_state(self) -> AudioState:
        """Return the effective audio state."""
        return AudioState.from_flags(self.input_muted, self.output_muted)

    @property
    def is_valid(self) -> bool:
        """Return True if id, unique id and name are all present."""
        return bool(self.id and self.unique_id and self.name)

    @property
    def connected_display(self) -> str:
        """Return connected duration for display."""
        return format_duration(self.connected_ms)
