"""ServerSnapshot model representing one poll of the voice server."""

from dataclasses import dataclass, field

from tsstatus.models.client import VoiceClient


@dataclass(frozen=True, slots=True)
class ServerSnapshot:
    """Point-in-time view of the voice server.

    Clients keep the order the server listed them in; that order is not
    stable between polls, so use sorted_clients for display.

    Attributes:
        server_name: Virtual server display name.
        clients: Connected user sessions.
    """

    server_name: str
    clients: tuple[VoiceClient, ...] = field(default_factory=tuple)

    @property
    def client_count(self) -> int:
        """Return number of connected clients."""
        return len(self.clients)

    @property
    def is_empty(self) -> bool:
        """Return True if nobody is connected."""
        return not self.clients

    @property
    def unique_ids(self) -> frozenset[str]:
        """Return the set of unique ids present."""
        return frozenset(c.unique_id for c in self.clients)

    @property
    def sorted_clients(self) -> list[VoiceClient]:
        """Return clients ordered by display name (case-insensitive)."""
        return sorted(self.clients, key=lambda c: (c.name.casefold(), c.unique_id))

    def get_client(self, unique_id: str) -> VoiceClient | None:
        """Return client by unique id or None if not present."""
        for client in self.clients:
            if client.unique_id == unique_id:
                return client
        return None
