"""Voice server status monitor.

This module provides a Qt-integrated poll driver that snapshots the voice
server through ServerQuery, runs change tracking, and emits a signal
whenever an update should be published.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass

from PySide6.QtCore import QObject, Signal

from tsstatus.api.query import (
    QueryClient,
    QueryConnectionError,
    QueryError,
    QueryTimeoutError,
)
from tsstatus.core.config import QuerySettings
from tsstatus.core.snapshot import SnapshotBuilder
from tsstatus.core.tracker import ChangeTracker
from tsstatus.models.departure import Departure
from tsstatus.models.snapshot import ServerSnapshot

logger = logging.getLogger(__name__)

SESSION_ERRORS = (QueryConnectionError, QueryError, QueryTimeoutError)


@dataclass(frozen=True)
class StatusUpdate:
    """A snapshot selected for publishing, with its change events.

    Attributes:
        snapshot: The published snapshot.
        joined_names: Users who joined since the previous poll.
        departures: Users who left within the departure window, newest first.
        signature: Signature of the snapshot.
        published_at: Timestamp of the publish decision.
        heartbeat: True if published only because the forced interval elapsed.
    """

    snapshot: ServerSnapshot
    joined_names: tuple[str, ...] = ()
    departures: tuple[Departure, ...] = ()
    signature: str = ""
    published_at: float = 0.0
    heartbeat: bool = False

    @property
    def online_count(self) -> int:
        """Return number of connected users."""
        return self.snapshot.client_count


class StatusMonitor(QObject):
    """Poll the voice server and publish meaningful changes.

    Runs an asyncio event loop in a background thread. Each poll builds a
    snapshot on the current query session; any session failure discards
    the session and the next poll starts a fresh one.

    Example:
        monitor = StatusMonitor(config.get_query_settings())
        monitor.update_published.connect(lambda u: print(f"{u.online_count} online"))
        monitor.start()
    """

    # Emitted when a snapshot should be rendered
    # Parameter: StatusUpdate
    update_published = Signal(object)

    # Emitted on session state change
    # Parameter: bool (True = connected)
    connection_changed = Signal(bool)

    # Emitted when a poll cycle fails
    # Parameter: str (error message)
    error_occurred = Signal(str)

    def __init__(
        self,
        settings: QuerySettings,
        tracker: ChangeTracker | None = None,
        parent: QObject | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            settings: Connection and polling settings.
            tracker: Change tracker to use (a new one by default).
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._settings = settings
        self._tracker = tracker or ChangeTracker()
        # The poll thread and callers of reset() both touch the tracker
        self._tracker_lock = threading.Lock()

        self._running = False
        self._thread: threading.Thread | None = None
        self._connected = False

    @property
    def settings(self) -> QuerySettings:
        """Return the monitor settings."""
        return self._settings

    @property
    def tracker(self) -> ChangeTracker:
        """Return the change tracker."""
        return self._tracker

    @property
    def is_running(self) -> bool:
        """Return True if the poll thread is active."""
        return self._running

    def start(self) -> None:
        """Start the monitor."""
        if not self._running:
            self._running = True
            self._thread = threading.Thread(target=self._run_loop, daemon=True)
            self._thread.start()
            logger.info(
                "StatusMonitor started for %s:%d", self._settings.host, self._settings.port
            )

    def stop(self) -> None:
        """Stop the monitor."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=self._settings.poll_interval + 5.0)
            self._thread = None
            logger.info("StatusMonitor stopped")

    def reset(self) -> None:
        """Forget membership history; the next poll publishes unconditionally.

        Safe to call from any thread. A poll already in progress finishes
        first, so its publish cannot be recorded after the reset.
        """
        with self._tracker_lock:
            self._tracker.reset()

    def _run_loop(self) -> None:
        """Background thread: run asyncio event loop."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._monitor_loop())
        finally:
            loop.close()

    def _new_client(self) -> QueryClient:
        """Create a query client for a fresh session."""
        return QueryClient(
            self._settings.host,
            self._settings.port,
            self._settings.username,
            self._settings.password,
        )

    async def _monitor_loop(self) -> None:
        """Async monitor loop: open a session and poll until it fails."""
        while self._running:
            try:
                async with self._new_client() as client:
                    self._set_connected(True)
                    builder = SnapshotBuilder(
                        client, self._settings.server_port, self._settings.nickname
                    )

                    while self._running:
                        await self._poll(builder)
                        if not client.is_connected:
                            # A detail lookup lost the session mid-build
                            raise QueryConnectionError("Query session lost during poll")
                        await self._sleep_interruptible(self._settings.poll_interval)

            except SESSION_ERRORS as e:
                logger.warning("Poll failed, discarding session: %s", e)
                self._set_connected(False)
                self.error_occurred.emit(str(e))
                await self._sleep_interruptible(self._settings.poll_interval)

            except Exception as e:  # noqa: BLE001
                logger.exception("Unexpected error in status monitor: %s", e)
                self._set_connected(False)
                self.error_occurred.emit(f"Unexpected error: {e}")
                await self._sleep_interruptible(self._settings.poll_interval)

        self._set_connected(False)

    async def _sleep_interruptible(self, seconds: float) -> None:
        """Sleep in small increments to allow quick shutdown."""
        end_time = time.monotonic() + seconds
        while self._running and time.monotonic() < end_time:
            await asyncio.sleep(0.1)

    def _set_connected(self, connected: bool) -> None:
        """Emit connection_changed on transitions only."""
        if connected != self._connected:
            self._connected = connected
            self.connection_changed.emit(connected)

    async def _poll(self, builder: SnapshotBuilder) -> StatusUpdate | None:
        """Build one snapshot and publish it if it changed.

        Returns:
            The published update, or None if the poll was skipped.
        """
        snapshot = await builder.build()
        return self._process_snapshot(snapshot, time.time())

    def _process_snapshot(self, snapshot: ServerSnapshot, now: float) -> StatusUpdate | None:
        """Run change tracking on a snapshot and emit if publishable."""
        with self._tracker_lock:
            observation = self._tracker.observe(snapshot, now)

            if not self._tracker.should_publish(
                observation.signature, now, self._settings.forced_refresh
            ):
                return None

            update = StatusUpdate(
                snapshot=snapshot,
                joined_names=observation.joined_names,
                departures=tuple(self._tracker.departures(now)),
                signature=observation.signature,
                published_at=now,
                heartbeat=not observation.signature_changed,
            )
            self._tracker.mark_published(observation.signature, now)

        # Emit outside the lock; slots may call reset()
        logger.info("Published update (%d online)", update.online_count)
        self.update_published.emit(update)
        return update

    async def poll_once(self) -> StatusUpdate | None:
        """Run a single poll on a fresh session.

        Returns:
            The published update, or None if nothing was published.

        Raises:
            QueryConnectionError: If the session cannot be opened or fails.
            QueryTimeoutError: If the server stops responding.
            QueryError: If a command is rejected.
        """
        async with self._new_client() as client:
            builder = SnapshotBuilder(client, self._settings.server_port, self._settings.nickname)
            return await self._poll(builder)
