"""State machine for the device server session and its device list."""

import logging
import time
from collections.abc import Callable
from threading import RLock
from typing import Optional

from vibecanvas.devices.protocols import (
    DeviceAdded,
    DeviceHandle,
    DeviceRemoved,
    SessionDisconnected,
    Transport,
    TransportEvent,
)
from vibecanvas.exceptions import (
    NotConnectedError,
    TransportError,
    VibeCanvasError,
    wrap_transport_error,
)
from vibecanvas.models import ConnectionState
from vibecanvas.protocols import ConnectionObserver, DeviceObserver
from vibecanvas.utils import ObserverManager

logger = logging.getLogger(__name__)


class ConnectionStateMachine:
    """
    Single source of truth for connection state and the device list.

    Transitions::

        DISCONNECTED -> CONNECTING -> CONNECTED <-> SCANNING
        CONNECTING -> DISCONNECTED          (connect failed)
        any -> DISCONNECTED                 (disconnect() or SessionDisconnected)

    A transport is created on each connect attempt and dropped on teardown.
    Transport events are fed through handle_event(), so the machine can be
    driven in tests without a server.

    Device list and state are guarded by `lock`. Observers are notified
    after it is released, so they may query the machine from the callback.
    `on_session_end` is the exception: it runs under the lock whenever a
    live session ends, before any other thread can reconnect.
    """

    def __init__(
        self,
        transport_factory: Callable[[], Transport],
        lock: Optional[RLock] = None,
        scan_window_s: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        on_session_end: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the state machine.

        Args:
            transport_factory: Builds a fresh transport for each session
            lock: Lock shared with the playback scheduler (created if None)
            scan_window_s: How long scan() keeps discovery open
            sleep: Blocking wait used for the scan window; injectable for tests
            on_session_end: Called with the lock held when a session ends
        """
        self._transport_factory = transport_factory
        self._lock = lock or RLock()
        self._scan_window_s = scan_window_s
        self._sleep = sleep
        self._on_session_end = on_session_end

        self._state = ConnectionState.DISCONNECTED
        self._devices: list[DeviceHandle] = []
        self._transport: Optional[Transport] = None

        self._device_observers = ObserverManager[DeviceObserver](observer_type_name="device")
        self._state_observers = ObserverManager[ConnectionObserver](observer_type_name="connection")

    # =================================================================
    # Operations
    # =================================================================

    def connect(self, address: str) -> None:
        """
        Open a session with the device server.

        No-op if a session is already live or being opened.

        Raises:
            ServerConnectionError: The transport could not connect; state is DISCONNECTED again
        """
        with self._lock:
            if self._state != ConnectionState.DISCONNECTED:
                logger.debug(f"connect() ignored in state {self._state.value}")
                return

            transport = self._transport_factory()
            transport.set_event_handler(self.handle_event)
            self._transport = transport
            self._set_state(ConnectionState.CONNECTING)
        self._notify_state(ConnectionState.CONNECTING)

        logger.info(f"Connecting to {address}")
        try:
            transport.connect(address)
        except Exception as e:
            error = wrap_transport_error(e, address)
            logger.error(f"Connect failed: {error.technical_message}")
            with self._lock:
                if self._transport is transport:
                    self._transport = None
                    self._set_state(ConnectionState.DISCONNECTED)
            transport.set_event_handler(None)
            self._notify_state(ConnectionState.DISCONNECTED)
            raise error from e

        with self._lock:
            if self._transport is not transport:
                # disconnect() raced the handshake
                logger.info("Connection torn down while connecting")
                return
            self._merge_devices(transport.list_devices())
            devices = list(self._devices)
            self._set_state(ConnectionState.CONNECTED)

        self._notify_state(ConnectionState.CONNECTED)
        self._notify_devices(devices)

    def scan(self) -> None:
        """
        Run one discovery window and refresh the device list.

        Blocks for the scan window. Not cancellable, except that a disconnect
        during the window ends it early.

        Raises:
            NotConnectedError: No live session
            TransportError: The server refused to start scanning
        """
        with self._lock:
            if self._state == ConnectionState.SCANNING:
                logger.warning("Scan already in progress")
                return
            if self._state != ConnectionState.CONNECTED:
                raise NotConnectedError("scan for devices")
            transport = self._transport
            self._set_state(ConnectionState.SCANNING)
        self._notify_state(ConnectionState.SCANNING)

        logger.info(f"Scanning for devices ({self._scan_window_s:.1f}s)")
        try:
            transport.start_scanning()
        except Exception as e:
            logger.error(f"Could not start scanning: {e}")
            if self._finish_scan(transport, refresh=False):
                self._notify_state(ConnectionState.CONNECTED)
            if isinstance(e, VibeCanvasError):
                raise
            raise TransportError(str(e)) from e

        self._sleep(self._scan_window_s)

        with self._lock:
            still_scanning = self._transport is transport and self._state == ConnectionState.SCANNING
        if not still_scanning:
            logger.info("Scan ended early: session closed")
            return

        try:
            transport.stop_scanning()
        except Exception as e:
            logger.warning(f"Could not stop scanning: {e}")

        if self._finish_scan(transport, refresh=True):
            self._notify_state(ConnectionState.CONNECTED)
            self._notify_devices(self.devices)

    def disconnect(self) -> None:
        """Close the session and clear devices. Idempotent."""
        with self._lock:
            transport = self._transport
            had_devices = bool(self._devices)
            changed = self._state != ConnectionState.DISCONNECTED
            self._transport = None
            self._devices = []
            self._set_state(ConnectionState.DISCONNECTED)
            if changed:
                self._end_session()

        self._close_transport(transport)

        if changed:
            logger.info("Disconnected")
            self._notify_state(ConnectionState.DISCONNECTED)
        if had_devices:
            self._notify_devices([])

    # =================================================================
    # Transport events
    # =================================================================

    def handle_event(self, event: TransportEvent) -> None:
        """
        Apply one transport event.

        DeviceAdded / DeviceRemoved change the device list only.
        SessionDisconnected clears everything and moves to DISCONNECTED.
        """
        if isinstance(event, SessionDisconnected):
            self._handle_session_lost(event)
            return

        with self._lock:
            if self._state == ConnectionState.DISCONNECTED:
                logger.debug(f"Ignoring {event!r} while disconnected")
                return

            if isinstance(event, DeviceAdded):
                if any(d.index == event.device.index for d in self._devices):
                    return
                self._devices.append(event.device)
                logger.info(f"Device added: {event.device.name} (slot {len(self._devices) - 1})")
            elif isinstance(event, DeviceRemoved):
                before = len(self._devices)
                self._devices = [d for d in self._devices if d.index != event.device.index]
                if len(self._devices) == before:
                    return
                logger.info(f"Device removed: {event.device.name}")
            else:
                logger.debug(f"Unhandled transport event: {event!r}")
                return
            devices = list(self._devices)

        self._notify_devices(devices)

    def _handle_session_lost(self, event: SessionDisconnected) -> None:
        with self._lock:
            if self._state == ConnectionState.DISCONNECTED:
                return
            transport = self._transport
            had_devices = bool(self._devices)
            self._transport = None
            self._devices = []
            self._set_state(ConnectionState.DISCONNECTED)
            self._end_session()

        logger.warning(f"Session lost: {event.reason or 'unknown reason'}")
        # Observers hear about the loss before the transport is torn down,
        # which can block for seconds
        self._notify_state(ConnectionState.DISCONNECTED)
        if had_devices:
            self._notify_devices([])
        self._close_transport(transport)

    # =================================================================
    # Helpers
    # =================================================================

    def _set_state(self, state: ConnectionState) -> None:
        # Lock held by caller
        if state != self._state:
            logger.debug(f"Connection state: {self._state.value} -> {state.value}")
            self._state = state

    def _end_session(self) -> None:
        # Lock held by caller
        if self._on_session_end is not None:
            self._on_session_end()

    def _merge_devices(self, listed: list[DeviceHandle]) -> None:
        """Keep known devices in place, drop vanished ones, append new ones. Lock held."""
        listed_by_index = {d.index: d for d in listed}
        kept = [d for d in self._devices if d.index in listed_by_index]
        known = {d.index for d in kept}
        self._devices = kept + [d for d in listed if d.index not in known]

    def _finish_scan(self, transport: Transport, refresh: bool) -> bool:
        with self._lock:
            if self._transport is not transport or self._state != ConnectionState.SCANNING:
                return False
            if refresh:
                self._merge_devices(transport.list_devices())
                logger.info(f"Scan complete: {len(self._devices)} device(s)")
            self._set_state(ConnectionState.CONNECTED)
            return True

    def _close_transport(self, transport: Optional[Transport]) -> None:
        if transport is None:
            return
        transport.set_event_handler(None)
        try:
            transport.disconnect()
        except Exception as e:
            logger.warning(f"Error closing transport: {e}")

    def _notify_state(self, state: ConnectionState) -> None:
        self._state_observers.notify("on_connection_state_changed", state)

    def _notify_devices(self, devices: list[DeviceHandle]) -> None:
        self._device_observers.notify("on_devices_changed", devices)

    # =================================================================
    # Observers & queries
    # =================================================================

    def register_device_observer(self, observer: DeviceObserver) -> None:
        self._device_observers.register(observer)

    def unregister_device_observer(self, observer: DeviceObserver) -> None:
        self._device_observers.unregister(observer)

    def register_connection_observer(self, observer: ConnectionObserver) -> None:
        self._state_observers.register(observer)

    def unregister_connection_observer(self, observer: ConnectionObserver) -> None:
        self._state_observers.unregister(observer)

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def devices(self) -> list[DeviceHandle]:
        """Snapshot of the device list in binding order."""
        with self._lock:
            return list(self._devices)

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected
