"""Change tracking between successive server snapshots.

The ChangeTracker decides whether a snapshot is worth publishing and keeps
short-term membership history: who joined since the last poll and who
left within the departure window.

All timestamps are seconds as supplied by the caller, so the tracker can
be driven with a fake clock in tests.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from tsstatus.models.client import VoiceClient
from tsstatus.models.departure import Departure
from tsstatus.models.snapshot import ServerSnapshot

logger = logging.getLogger(__name__)

DEPARTURE_WINDOW = 30 * 60  # seconds

_FIELD_SEPARATOR = "|"
_CLIENT_SEPARATOR = "\n"
_UNKNOWN_NAME = "Unknown"


def _client_signature(client: VoiceClient) -> str:
    """Return the signature fragment for one client."""
    return _FIELD_SEPARATOR.join(
        [
            client.unique_id,
            client.name,
            client.channel_id,
            client.audio_state.value,
            "1" if client.away else "0",
            "1" if client.streaming else "0",
        ]
    )


def signature(clients: Iterable[VoiceClient]) -> str:
    """Return an order-independent fingerprint of the displayable state.

    Args:
        clients: Clients of one snapshot, in any order.

    Returns:
        Signature string; equal for snapshots that display identically.
    """
    return _CLIENT_SEPARATOR.join(sorted(_client_signature(c) for c in clients))


@dataclass(frozen=True)
class Observation:
    """Result of observing one snapshot.

    Attributes:
        signature: Signature of the observed snapshot.
        signature_changed: True if it differs from the last published one.
        joined_names: Display names of users new since the previous poll.
        departed_now: Departures recorded by this observation.
    """

    signature: str
    signature_changed: bool
    joined_names: tuple[str, ...] = ()
    departed_now: tuple[Departure, ...] = ()


class ChangeTracker:
    """Tracks membership and publish state across snapshots.

    Example:
        tracker = ChangeTracker()
        observation = tracker.observe(snapshot, time.time())
        if tracker.should_publish(observation.signature, now, forced_interval=30):
            publish(snapshot, observation.joined_names, tracker.departures(now))
            tracker.mark_published(observation.signature, now)
    """

    def __init__(self, departure_window: float = DEPARTURE_WINDOW) -> None:
        """Initialize an empty tracker.

        Args:
            departure_window: Seconds a departure stays visible.
        """
        self._departure_window = departure_window
        self._previous_ids: set[str] | None = None
        self._names: dict[str, str] = {}
        self._departures: dict[str, Departure] = {}
        self._last_signature: str | None = None
        self._last_published_at: float | None = None

    @property
    def last_signature(self) -> str | None:
        """Return the last published signature."""
        return self._last_signature

    @property
    def last_published_at(self) -> float | None:
        """Return when the last publish happened."""
        return self._last_published_at

    def name_for(self, unique_id: str) -> str | None:
        """Return the last known display name for a unique id."""
        return self._names.get(unique_id)

    def observe(self, snapshot: ServerSnapshot, now: float) -> Observation:
        """Update membership history from a new snapshot.

        Args:
            snapshot: The snapshot of this poll.
            now: Current timestamp in seconds.

        Returns:
            Observation with joins, new departures and signature.
        """
        clients = snapshot.sorted_clients
        current_ids = {c.unique_id for c in clients}
        previous_ids = self._previous_ids

        # No baseline on the first observation, so nobody "joined"
        joined_names: list[str] = []
        if previous_ids is not None:
            joined_names = [c.name for c in clients if c.unique_id not in previous_ids]

        for client in clients:
            self._names[client.unique_id] = client.name

        departed_now: list[Departure] = []
        if previous_ids is not None:
            for unique_id in sorted(previous_ids - current_ids):
                departure = Departure(
                    unique_id=unique_id,
                    name=self._names.get(unique_id, _UNKNOWN_NAME),
                    left_at=now,
                )
                self._departures[unique_id] = departure
                departed_now.append(departure)

        for unique_id, departure in list(self._departures.items()):
            if unique_id in current_ids or departure.age(now) > self._departure_window:
                del self._departures[unique_id]

        self._previous_ids = current_ids

        if joined_names or departed_now:
            logger.debug("Joined: %s, left: %s", joined_names, [d.name for d in departed_now])

        snapshot_signature = signature(clients)
        return Observation(
            signature=snapshot_signature,
            signature_changed=snapshot_signature != self._last_signature,
            joined_names=tuple(joined_names),
            departed_now=tuple(departed_now),
        )

    def departures(self, now: float) -> list[Departure]:
        """Return active departures, most recent first.

        Args:
            now: Current timestamp in seconds.
        """
        active = [d for d in self._departures.values() if d.age(now) <= self._departure_window]
        return sorted(active, key=lambda d: d.left_at, reverse=True)

    def should_publish(self, snapshot_signature: str, now: float, forced_interval: float) -> bool:
        """Return True if a snapshot should be published.

        Publishes on any signature change, and as a heartbeat once
        forced_interval seconds passed since the last publish.

        Args:
            snapshot_signature: Signature of the candidate snapshot.
            now: Current timestamp in seconds.
            forced_interval: Heartbeat interval in seconds.
        """
        if snapshot_signature != self._last_signature:
            return True
        if self._last_published_at is None:
            return True
        return now - self._last_published_at >= forced_interval

    def mark_published(self, snapshot_signature: str, now: float) -> None:
        """Record a publish of the given signature."""
        self._last_signature = snapshot_signature
        self._last_published_at = now

    def reset(self) -> None:
        """Forget all membership history and publish state."""
        self._previous_ids = None
        self._names.clear()
        self._departures.clear()
        self._last_signature = None
        self._last_published_at = None
