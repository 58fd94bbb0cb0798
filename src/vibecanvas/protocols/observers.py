"""Observer protocol definitions.

- Device observers: React to changes in the connected device list
- Connection observers: React to connection state transitions
- Playback observers: React to scheduler session lifecycle
"""

from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vibecanvas.devices.protocols import DeviceHandle
    from vibecanvas.models import ConnectionState, VibePattern

from .events import PlaybackEvent


@runtime_checkable
class DeviceObserver(Protocol):
    """Observer that receives the current device list whenever it changes."""

    def on_devices_changed(self, devices: list["DeviceHandle"]) -> None:
        """
        Handle a device list change.

        Args:
            devices: Snapshot of the device list, in binding order

        Threading:
            May be called from the transport I/O thread. Implementations
            should not block.
        """
        ...


@runtime_checkable
class ConnectionObserver(Protocol):
    """Observer that receives connection state transitions."""

    def on_connection_state_changed(self, state: "ConnectionState") -> None:
        """
        Handle a connection state change.

        Args:
            state: The new state
        """
        ...


@runtime_checkable
class PlaybackObserver(Protocol):
    """Observer that receives playback session events."""

    def on_playback_event(self, event: PlaybackEvent, pattern: Optional["VibePattern"]) -> None:
        """
        Handle a playback event.

        Args:
            event: What happened
            pattern: The pattern of the session involved

        Threading:
            FINISHED is delivered from the ticker thread.
        """
        ...
