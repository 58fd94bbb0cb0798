"""
Core controller - UI-agnostic entry point.

This can be used in:
- CLI tool
- GUI or web front end
- Test environment

Composes the connection state machine and the playback scheduler around
one shared lock and exposes the operations a front end needs.
"""

import logging
import time
from collections.abc import Callable
from threading import RLock
from typing import Optional

from vibecanvas.core.connection import ConnectionStateMachine
from vibecanvas.core.scheduler import PlaybackScheduler, PlaybackSession
from vibecanvas.core.ticker import ThreadTicker, TickerFactory, monotonic_ms
from vibecanvas.devices import ButtplugTransport
from vibecanvas.devices.protocols import DeviceHandle, Transport
from vibecanvas.exceptions import DeviceDispatchError, DeviceIndexError, NotConnectedError
from vibecanvas.models import AppConfig, ConnectionState, PlaybackState, VibePattern
from vibecanvas.protocols import ConnectionObserver, DeviceObserver, PlaybackObserver

logger = logging.getLogger(__name__)


class _DeviceCallback:
    """Adapts a plain callable to DeviceObserver."""

    def __init__(self, callback: Callable[[list[DeviceHandle]], None]):
        self._callback = callback

    def on_devices_changed(self, devices: list[DeviceHandle]) -> None:
        self._callback(devices)


class _StateCallback:
    """Adapts a plain callable to ConnectionObserver."""

    def __init__(self, callback: Callable[[ConnectionState], None]):
        self._callback = callback

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        self._callback(state)


class VibeController:
    """
    Drives patterns onto devices connected through a device server.

    Responsibilities:
    - Connection lifecycle (connect, scan, disconnect)
    - Pattern playback (play, stop)
    - Direct single-shot output (set_vibration)
    - Subscription for device list and connection state changes

    NOT responsible for:
    - Drawing or editing patterns
    - Rendering status
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        transport_factory: Optional[Callable[[], Transport]] = None,
        clock: Callable[[], float] = monotonic_ms,
        ticker_factory: TickerFactory = ThreadTicker,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize controller.

        Args:
            config: Application configuration (defaults if None)
            transport_factory: Builds a transport per session (Buttplug websocket if None)
            clock: Millisecond clock for the scheduler
            ticker_factory: Repeating timer factory for the scheduler
            sleep: Blocking wait used for the scan window
        """
        self.config = config or AppConfig()
        self._lock = RLock()

        self.connection = ConnectionStateMachine(
            transport_factory or self._create_buttplug_transport,
            lock=self._lock,
            scan_window_s=self.config.scan_window_s,
            sleep=sleep,
            on_session_end=lambda: self.scheduler.halt(),
        )
        self.scheduler = PlaybackScheduler(
            lambda: self.connection.devices,
            lock=self._lock,
            tick_interval_ms=self.config.tick_interval_ms,
            clock=clock,
            ticker_factory=ticker_factory,
        )
        # Losing the connection halts playback under the lock; the scheduler
        # reports STOPPED when it sees DISCONNECTED
        self.connection.register_connection_observer(self.scheduler)
        logger.debug("VibeController initialized")

    def _create_buttplug_transport(self) -> Transport:
        return ButtplugTransport(
            client_name=self.config.client_name,
            connect_timeout=self.config.connect_timeout_s,
            request_timeout=self.config.request_timeout_s,
        )

    # =================================================================
    # Connection
    # =================================================================

    def connect(self, address: Optional[str] = None) -> None:
        """
        Connect to the device server.

        Args:
            address: Websocket address; defaults to config.server_address

        Raises:
            ServerConnectionError: If the server cannot be reached
        """
        self.connection.connect(address or self.config.server_address)

    def scan(self) -> None:
        """
        Scan for devices for the configured window (blocking).

        Raises:
            NotConnectedError: If not connected
        """
        self.connection.scan()

    def disconnect(self) -> None:
        """Stop playback, stop all devices and close the session. Idempotent."""
        self.scheduler.stop()
        self.connection.disconnect()

    # =================================================================
    # Playback
    # =================================================================

    def play(self, pattern: VibePattern) -> PlaybackSession:
        """
        Start playing a pattern, replacing any running one.

        Raises:
            NotConnectedError: If not connected
            NoDevicesError: If no device is connected
            InsufficientPointsError: If no track has two or more points
        """
        if not self.connection.is_connected:
            raise NotConnectedError("play a pattern")
        return self.scheduler.play(pattern)

    def stop(self) -> None:
        """Stop playback and send stop to every device. Never raises."""
        self.scheduler.stop()

    def set_vibration(self, intensity: float, device_index: int = 0) -> None:
        """
        Send one intensity directly to one device, bypassing the scheduler.

        A running pattern will overwrite it on its next tick.

        Args:
            intensity: 0-100, clamped
            device_index: Position in the device list

        Raises:
            NotConnectedError: If not connected
            DeviceIndexError: If no device sits at that position
            DeviceDispatchError: If the device rejected the command
        """
        if not self.connection.is_connected:
            raise NotConnectedError("set vibration")

        devices = self.connection.devices
        if not 0 <= device_index < len(devices):
            raise DeviceIndexError(device_index, len(devices))

        device = devices[device_index]
        level = min(100.0, max(0.0, intensity)) / 100.0
        try:
            device.send_vibration(level)
        except Exception as e:
            raise DeviceDispatchError(device_index, device.name, e) from e
        logger.debug(f"Set {device.name} to {level:.2f}")

    # =================================================================
    # Subscriptions
    # =================================================================

    def on_devices_changed(self, callback: Callable[[list[DeviceHandle]], None]) -> Callable[[], None]:
        """
        Call `callback` with the device list whenever it changes.

        Returns:
            A function that removes the subscription
        """
        observer = _DeviceCallback(callback)
        self.connection.register_device_observer(observer)
        return lambda: self.connection.unregister_device_observer(observer)

    def on_state_changed(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """
        Call `callback` with the connection state whenever it changes.

        Returns:
            A function that removes the subscription
        """
        observer = _StateCallback(callback)
        self.connection.register_connection_observer(observer)
        return lambda: self.connection.unregister_connection_observer(observer)

    def register_device_observer(self, observer: DeviceObserver) -> None:
        self.connection.register_device_observer(observer)

    def register_connection_observer(self, observer: ConnectionObserver) -> None:
        self.connection.register_connection_observer(observer)

    def register_playback_observer(self, observer: PlaybackObserver) -> None:
        self.scheduler.register_observer(observer)

    # =================================================================
    # Query Methods
    # =================================================================

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def devices(self) -> list[DeviceHandle]:
        return self.connection.devices

    @property
    def playback_state(self) -> PlaybackState:
        return self.scheduler.state

    @property
    def is_playing(self) -> bool:
        return self.scheduler.is_playing

    # =================================================================
    # Context Manager
    # =================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
