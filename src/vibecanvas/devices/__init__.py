"""Device server transports and device handles."""

from .buttplug import ButtplugDevice, ButtplugTransport
from .protocols import (
    DeviceAdded,
    DeviceHandle,
    DeviceRemoved,
    SessionDisconnected,
    Transport,
    TransportEvent,
    TransportEventHandler,
)
from .simulated import SimulatedDevice, SimulatedTransport

__all__ = [
    # Protocols
    "DeviceHandle",
    "Transport",
    "TransportEventHandler",
    # Events
    "DeviceAdded",
    "DeviceRemoved",
    "SessionDisconnected",
    "TransportEvent",
    # Implementations
    "ButtplugDevice",
    "ButtplugTransport",
    "SimulatedDevice",
    "SimulatedTransport",
]
