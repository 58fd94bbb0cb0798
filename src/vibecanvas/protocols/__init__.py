"""Observer protocols and events for subscribers of the core."""

from .events import PlaybackEvent
from .observers import ConnectionObserver, DeviceObserver, PlaybackObserver

__all__ = [
    # Events
    "PlaybackEvent",
    # Observers
    "ConnectionObserver",
    "DeviceObserver",
    "PlaybackObserver",
]
