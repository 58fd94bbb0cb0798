"""In-memory transport for dry runs and tests.

Devices appear when scanning starts, record every level they receive, and
can be told to fail. Events can be injected to mimic the server.
"""

import logging
from threading import Lock
from typing import Optional

from vibecanvas.devices.protocols import (
    DeviceAdded,
    DeviceRemoved,
    SessionDisconnected,
    TransportEvent,
    TransportEventHandler,
)

logger = logging.getLogger(__name__)


class SimulatedDevice:
    """Device that logs the commands it receives."""

    def __init__(self, index: int, name: str, has_vibration: bool = True, fail: bool = False):
        self._index = index
        self._name = name
        self._has_vibration = has_vibration
        self.fail = fail
        self.levels: list[float] = []
        self.stop_count = 0

    @property
    def index(self) -> int:
        return self._index

    @property
    def name(self) -> str:
        return self._name

    @property
    def has_vibration(self) -> bool:
        return self._has_vibration

    @property
    def last_level(self) -> Optional[float]:
        """Most recent level sent, or None if nothing was sent."""
        return self.levels[-1] if self.levels else None

    def send_vibration(self, level: float) -> None:
        if self.fail:
            raise RuntimeError(f"{self._name} rejected vibration command")
        self.levels.append(level)
        logger.debug(f"[sim] {self._name} <- {level:.3f}")

    def stop(self) -> None:
        if self.fail:
            raise RuntimeError(f"{self._name} rejected stop command")
        self.stop_count += 1
        logger.debug(f"[sim] {self._name} stopped")

    def __repr__(self) -> str:
        return f"SimulatedDevice({self._index}, {self._name!r})"


class SimulatedTransport:
    """
    Transport backed by a list of SimulatedDevice objects.

    Devices passed as `devices` are found by the first scan. Set
    `fail_connect` to make connect() raise ConnectionRefusedError.
    """

    def __init__(self, devices: Optional[list[SimulatedDevice]] = None, fail_connect: bool = False):
        self._pending = list(devices or [])
        self._devices: dict[int, SimulatedDevice] = {}
        self._handler: Optional[TransportEventHandler] = None
        self._connected = False
        self._lock = Lock()
        self.fail_connect = fail_connect
        self.scanning = False
        self.address: Optional[str] = None

    @classmethod
    def with_devices(cls, count: int) -> "SimulatedTransport":
        """Build a transport that will discover `count` vibrating devices."""
        return cls([SimulatedDevice(i, f"Simulated Vibe {i}") for i in range(count)])

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_event_handler(self, handler: Optional[TransportEventHandler]) -> None:
        self._handler = handler

    def connect(self, address: str) -> None:
        if self._connected:
            return
        if self.fail_connect:
            raise ConnectionRefusedError(f"Connect call failed {address}")
        self.address = address
        self._connected = True
        logger.info(f"[sim] connected to {address}")

    def disconnect(self) -> None:
        self._connected = False
        self.scanning = False
        with self._lock:
            self._devices.clear()
        logger.info("[sim] disconnected")

    def start_scanning(self) -> None:
        self.scanning = True
        with self._lock:
            found, self._pending = self._pending, []
        for device in found:
            self.add_device(device)

    def stop_scanning(self) -> None:
        self.scanning = False

    def list_devices(self) -> list[SimulatedDevice]:
        with self._lock:
            return [self._devices[i] for i in sorted(self._devices)]

    # =================================================================
    # Event injection
    # =================================================================

    def add_device(self, device: SimulatedDevice) -> None:
        """Attach a device and push DeviceAdded."""
        with self._lock:
            self._devices[device.index] = device
        self._emit(DeviceAdded(device))

    def remove_device(self, index: int) -> None:
        """Detach a device and push DeviceRemoved."""
        with self._lock:
            device = self._devices.pop(index, None)
        if device is not None:
            self._emit(DeviceRemoved(device))

    def drop_session(self, reason: str = "server closed") -> None:
        """Simulate the server going away."""
        self._connected = False
        self.scanning = False
        with self._lock:
            self._devices.clear()
        self._emit(SessionDisconnected(reason))

    def _emit(self, event: TransportEvent) -> None:
        if self._handler:
            self._handler(event)
