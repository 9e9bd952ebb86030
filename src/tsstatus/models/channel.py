"""Channel model."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Channel:
    """A voice channel, used to resolve a client's channel id to a name.

    Attributes:
        id: Channel id from the server.
        name: Channel display name.
    """

    id: str
    name: str
