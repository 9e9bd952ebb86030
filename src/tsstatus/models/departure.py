"""Departure model for users who recently left the server."""

from dataclasses import dataclass

_SECONDS_PER_MINUTE = 60
_SECONDS_PER_HOUR = 3600


def _format_ago(seconds: float) -> str:
    """Format elapsed seconds as a human-readable "ago" string."""
    if seconds < 0:
        return "just now"

    total_seconds = int(seconds)
    if total_seconds < _SECONDS_PER_MINUTE:
        return f"{total_seconds}s ago"

    total_minutes = total_seconds // _SECONDS_PER_MINUTE
    if total_seconds < _SECONDS_PER_HOUR:
        return f"{total_minutes}m ago"

    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m ago"


@dataclass(frozen=True, slots=True)
class Departure:
    """A user who disappeared from the server.

    Attributes:
        unique_id: Stable identity of the user.
        name: Last known display name.
        left_at: Timestamp (seconds) of the poll that first missed the user.
    """

    unique_id: str
    name: str
    left_at: float

    def age(self, now: float) -> float:
        """Return seconds elapsed since the departure."""
        return now - self.left_at

    def ago(self, now: float) -> str:
        """Return elapsed time for display."""
        return _format_ago(self.age(now))
