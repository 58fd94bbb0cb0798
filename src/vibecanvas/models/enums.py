"""Enumerations for connection and playback state."""

from enum import Enum


class ConnectionState(str, Enum):
    """Lifecycle of the device server session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SCANNING = "scanning"  # Connected, discovery window open

    @property
    def is_connected(self) -> bool:
        """True while a session is live (scanning included)."""
        return self in (ConnectionState.CONNECTED, ConnectionState.SCANNING)


class PlaybackState(str, Enum):
    """Scheduler state."""

    IDLE = "idle"
    RUNNING = "running"
