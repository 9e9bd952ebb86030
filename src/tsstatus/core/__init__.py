"""Core business logic layer.

This module contains the polling and change-tracking logic that sits
between the ServerQuery client and whatever renders the status.

Classes:
    ChangeTracker: Decides what to publish and remembers departures.
    SnapshotBuilder: Assembles ServerSnapshots from a query session.
    StatusMonitor: Poll driver with Qt signals.
    ConfigManager: QSettings wrapper for configuration.
"""

from tsstatus.core.config import ConfigManager, QuerySettings
from tsstatus.core.monitor import StatusMonitor, StatusUpdate
from tsstatus.core.snapshot import SnapshotBuilder
from tsstatus.core.tracker import DEPARTURE_WINDOW, ChangeTracker, Observation, signature

__all__ = [
    "DEPARTURE_WINDOW",
    "ChangeTracker",
    "ConfigManager",
    "Observation",
    "QuerySettings",
    "SnapshotBuilder",
    "StatusMonitor",
    "StatusUpdate",
    "signature",
]
