"""Transport and device protocols, plus inbound transport events."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable


class TransportEvent:
    """Generic event pushed by a transport (input from the device server)."""

    pass


class DeviceAdded(TransportEvent):
    """A device joined the session."""

    def __init__(self, device: DeviceHandle):
        self.device = device

    def __repr__(self) -> str:
        return f"DeviceAdded({self.device.name!r})"


class DeviceRemoved(TransportEvent):
    """A device left the session."""

    def __init__(self, device: DeviceHandle):
        self.device = device

    def __repr__(self) -> str:
        return f"DeviceRemoved({self.device.name!r})"


class SessionDisconnected(TransportEvent):
    """The server session ended without being asked to."""

    def __init__(self, reason: str | None = None):
        self.reason = reason

    def __repr__(self) -> str:
        return f"SessionDisconnected({self.reason!r})"


TransportEventHandler = Callable[[TransportEvent], None]


@runtime_checkable
class DeviceHandle(Protocol):
    """One connected device as exposed by a transport."""

    @property
    def index(self) -> int:
        """Server-assigned device index (stable for the session)."""
        ...

    @property
    def name(self) -> str:
        """Human-readable device name."""
        ...

    @property
    def has_vibration(self) -> bool:
        """True if the device has at least one vibration actuator."""
        ...

    def send_vibration(self, level: float) -> None:
        """
        Set every vibration actuator to a level.

        Called once per tick with the playback lock held, so it must return
        promptly. Transports that talk to a remote server send without
        waiting for the reply and log late rejections themselves.

        Args:
            level: Intensity in [0, 1]

        Raises:
            Exception: If the command cannot be sent or is rejected at once
        """
        ...

    def stop(self) -> None:
        """Stop all actuators on the device."""
        ...


@runtime_checkable
class Transport(Protocol):
    """
    Connection to a device server.

    Methods block until the server has answered. Events are pushed to the
    registered handler from the transport's own I/O thread.
    """

    @property
    def is_connected(self) -> bool:
        """Check if the session is live."""
        ...

    def set_event_handler(self, handler: TransportEventHandler | None) -> None:
        """Register the receiver for DeviceAdded/DeviceRemoved/SessionDisconnected."""
        ...

    def connect(self, address: str) -> None:
        """
        Open a session (no-op if already connected).

        Raises:
            Exception: Low-level failure; callers wrap it with wrap_transport_error
        """
        ...

    def disconnect(self) -> None:
        """Close the session. Must not push SessionDisconnected."""
        ...

    def start_scanning(self) -> None:
        """Begin device discovery."""
        ...

    def stop_scanning(self) -> None:
        """End device discovery."""
        ...

    def list_devices(self) -> list[DeviceHandle]:
        """Current devices ordered by server index."""
        ...
