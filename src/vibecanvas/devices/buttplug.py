"""Buttplug protocol (v3) transport over websocket.

Talks to Intiface Central or any other Buttplug server. The websocket runs
on a private asyncio loop thread; the public methods are blocking so the
core can stay on plain threads. Server-pushed events are handed to the
registered handler from a separate dispatcher thread, in arrival order, so a
handler that waits on a lock never stalls the socket reader.

Wire format: every frame is a JSON array of single-key objects,
e.g. ``[{"ScalarCmd": {"Id": 7, "DeviceIndex": 0, "Scalars": [...]}}]``.
Replies carry the request ``Id``; server events use ``Id`` 0.
"""

import asyncio
import concurrent.futures
import itertools
import json
import logging
import threading
from queue import Empty, Queue
from typing import Any, Optional

import aiohttp
from aiohttp import WSMsgType

from vibecanvas.devices.protocols import (
    DeviceAdded,
    DeviceRemoved,
    SessionDisconnected,
    TransportEvent,
    TransportEventHandler,
)
from vibecanvas.exceptions import DeviceDispatchError, TransportError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 3
VIBRATE = "Vibrate"


def encode_message(name: str, msg_id: int, **fields: Any) -> str:
    """Serialize one outgoing message into a frame."""
    return json.dumps([{name: {"Id": msg_id, **fields}}])


def decode_messages(text: str) -> list[tuple[str, dict]]:
    """
    Split a frame into (message name, body) pairs.

    Raises:
        ValueError: If the frame is not a JSON array of single-key objects
    """
    payload = json.loads(text)
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON array, got {type(payload).__name__}")

    messages = []
    for item in payload:
        if not isinstance(item, dict) or len(item) != 1:
            raise ValueError(f"Malformed message: {item!r}")
        name, body = next(iter(item.items()))
        messages.append((name, body or {}))
    return messages


def vibrate_actuator_indices(device_messages: dict) -> list[int]:
    """Indices of the Vibrate actuators in a device's ScalarCmd attribute list."""
    scalar_attrs = device_messages.get("ScalarCmd") or []
    return [i for i, attr in enumerate(scalar_attrs) if attr.get("ActuatorType") == VIBRATE]


class ButtplugDevice:
    """
    Device handle backed by a ButtplugTransport session.

    Vibration commands do not wait for the server's reply. At most one
    ScalarCmd per device is in flight; levels sent meanwhile collapse into
    the latest one, which goes out when the reply (or a failure) arrives.
    """

    def __init__(self, transport: "ButtplugTransport", info: dict):
        self._transport = transport
        self._index = int(info["DeviceIndex"])
        self._name = info.get("DeviceDisplayName") or info.get("DeviceName") or f"Device {self._index}"
        self._vibrators = vibrate_actuator_indices(info.get("DeviceMessages") or {})

        self._send_lock = threading.Lock()
        self._in_flight: Optional[concurrent.futures.Future] = None
        self._queued_level: Optional[float] = None

    @property
    def index(self) -> int:
        return self._index

    @property
    def name(self) -> str:
        return self._name

    @property
    def has_vibration(self) -> bool:
        return bool(self._vibrators)

    def send_vibration(self, level: float) -> None:
        """
        Set every vibrator to `level` (0-1) and return without waiting.

        Raises:
            TransportError: If the device cannot vibrate or there is no open session
        """
        if not self._vibrators:
            raise TransportError(f"{self._name} has no vibration actuator")

        with self._send_lock:
            if self._in_flight is not None:
                self._queued_level = level
                return
            future = self._submit_level(level)
        future.add_done_callback(self._on_vibration_done)

    def stop(self) -> None:
        self._transport.request("StopDeviceCmd", DeviceIndex=self._index)

    def _submit_level(self, level: float) -> concurrent.futures.Future:
        # Call with _send_lock held
        scalars = [{"Index": i, "Scalar": level, "ActuatorType": VIBRATE} for i in self._vibrators]
        future = self._transport.submit("ScalarCmd", DeviceIndex=self._index, Scalars=scalars)
        self._in_flight = future
        return future

    def _on_vibration_done(self, future: concurrent.futures.Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            error = DeviceDispatchError(self._index, self._name, future.exception())
            logger.warning(error.technical_message)

        with self._send_lock:
            self._in_flight = None
            level, self._queued_level = self._queued_level, None
            if level is None:
                return
            try:
                future = self._submit_level(level)
            except TransportError as e:
                logger.debug(f"Dropped queued level for {self._name}: {e}")
                return
        future.add_done_callback(self._on_vibration_done)

    def __repr__(self) -> str:
        return f"ButtplugDevice({self._index}, {self._name!r})"


class ButtplugTransport:
    """
    Blocking facade over a Buttplug websocket session.

    Lifecycle: connect() starts the loop and dispatcher threads and performs
    the handshake; disconnect() or a server-side close tears them down.
    """

    def __init__(
        self,
        client_name: str = "VibeCanvas",
        connect_timeout: float = 5.0,
        request_timeout: float = 2.0,
    ):
        self._client_name = client_name
        self._connect_timeout = connect_timeout
        self._request_timeout = request_timeout

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._pinger: Optional[asyncio.Task] = None

        # Only touched on the loop thread
        self._pending: dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)

        self._devices: dict[int, ButtplugDevice] = {}
        self._devices_lock = threading.Lock()

        self._handler: Optional[TransportEventHandler] = None
        self._events: Queue[Optional[TransportEvent]] = Queue()
        self._dispatcher: Optional[threading.Thread] = None

        self._connected = False
        self._closing = False

    # =================================================================
    # Transport protocol
    # =================================================================

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_event_handler(self, handler: Optional[TransportEventHandler]) -> None:
        self._handler = handler

    def connect(self, address: str) -> None:
        """
        Open the websocket and perform the Buttplug handshake.

        Raises:
            aiohttp.ClientError, OSError, TimeoutError, TransportError
        """
        if self._connected:
            return

        self._start_threads()
        try:
            self._run(self._connect(address), self._connect_timeout)
        except BaseException:
            self._closing = True
            try:
                self._run(self._close(), self._request_timeout)
            except Exception as e:
                logger.debug(f"Cleanup after failed connect raised: {e}")
            self._stop_threads()
            self._closing = False
            raise

        self._connected = True
        logger.info(f"Connected to Buttplug server at {address}")

    def disconnect(self) -> None:
        if self._loop is None:
            return

        self._closing = True
        self._connected = False
        try:
            self._run(self._close(), self._request_timeout)
        except Exception as e:
            logger.warning(f"Error closing Buttplug session: {e}")
        finally:
            self._stop_threads()
            with self._devices_lock:
                self._devices.clear()
            self._closing = False
        logger.info("Disconnected from Buttplug server")

    def start_scanning(self) -> None:
        self.request("StartScanning")

    def stop_scanning(self) -> None:
        self.request("StopScanning")

    def list_devices(self) -> list[ButtplugDevice]:
        with self._devices_lock:
            return [self._devices[i] for i in sorted(self._devices)]

    def request(self, name: str, **fields: Any) -> dict:
        """
        Send a request from any thread and wait for its reply.

        Raises:
            TransportError: If not connected or the server replied with Error
            TimeoutError: If no reply arrived within the request timeout
        """
        if self._loop is None or self._ws is None:
            raise TransportError(f"Cannot send {name}: no open session")
        return self._run(self._request(name, **fields), self._request_timeout + 0.5)

    def submit(self, name: str, **fields: Any) -> concurrent.futures.Future:
        """
        Send a request from any thread without waiting for its reply.

        The returned future resolves to the reply, or to the error that a
        blocking request() would have raised.

        Raises:
            TransportError: If not connected
        """
        loop = self._loop
        if loop is None or self._ws is None:
            raise TransportError(f"Cannot send {name}: no open session")

        coro = self._request(name, **fields)
        try:
            return asyncio.run_coroutine_threadsafe(coro, loop)
        except RuntimeError as e:
            # Loop closed between the check and the call
            coro.close()
            raise TransportError(f"Cannot send {name}: {e}") from e

    # =================================================================
    # Thread plumbing
    # =================================================================

    def _start_threads(self) -> None:
        self._events = Queue()
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever, name="buttplug-loop", daemon=True
        )
        self._loop_thread.start()

        self._dispatcher = threading.Thread(
            target=self._dispatch_events, name="buttplug-events", daemon=True
        )
        self._dispatcher.start()

    def _stop_threads(self) -> None:
        loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
            if self._loop_thread and self._loop_thread is not threading.current_thread():
                self._loop_thread.join(timeout=1.0)
            if not loop.is_running():
                loop.close()
        self._loop = None
        self._loop_thread = None

        self._events.put(None)
        if self._dispatcher and self._dispatcher is not threading.current_thread():
            self._dispatcher.join(timeout=1.0)
        self._dispatcher = None

    def _run(self, coro, timeout: float) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except TimeoutError:
            future.cancel()
            raise

    def _dispatch_events(self) -> None:
        while True:
            try:
                event = self._events.get(timeout=0.5)
            except Empty:
                continue
            if event is None:
                return
            handler = self._handler
            if handler is None:
                continue
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error handling transport event {event!r}: {e}", exc_info=True)

    # =================================================================
    # Loop-side coroutines
    # =================================================================

    async def _connect(self, address: str) -> None:
        self._session = aiohttp.ClientSession()
        self._ws = await self._session.ws_connect(address)
        self._reader = asyncio.create_task(self._read_loop())

        reply = await self._request(
            "RequestServerInfo", ClientName=self._client_name, MessageVersion=PROTOCOL_VERSION
        )
        info = reply.get("ServerInfo", {})
        logger.info(f"Server: {info.get('ServerName', 'unknown')} (protocol v{info.get('MessageVersion')})")

        max_ping_ms = info.get("MaxPingTime", 0) or 0
        if max_ping_ms > 0:
            self._pinger = asyncio.create_task(self._ping_loop(max_ping_ms / 2000.0))

        reply = await self._request("RequestDeviceList")
        for device_info in reply.get("DeviceList", {}).get("Devices", []):
            self._add_device(device_info)

    async def _close(self) -> None:
        if self._pinger:
            self._pinger.cancel()
            self._pinger = None
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._reader:
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        if self._session is not None:
            await self._session.close()
        self._ws = None
        self._session = None

    async def _request(self, name: str, **fields: Any) -> dict:
        if self._ws is None or self._ws.closed:
            raise TransportError(f"Cannot send {name}: websocket closed")

        msg_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        try:
            await self._ws.send_str(encode_message(name, msg_id, **fields))
            reply = await asyncio.wait_for(future, self._request_timeout)
        finally:
            self._pending.pop(msg_id, None)

        if "Error" in reply:
            error = reply["Error"]
            raise TransportError(error.get("ErrorMessage", "unknown error"), error.get("ErrorCode"))
        return reply

    async def _ping_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self._request("Ping")
            except (TransportError, asyncio.TimeoutError) as e:
                logger.warning(f"Ping failed: {e}")
            except Exception as e:
                logger.error(f"Ping failed: {e}", exc_info=True)

    async def _read_loop(self) -> None:
        try:
            async for msg in self._ws:
                if msg.type == WSMsgType.TEXT:
                    self._handle_frame(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.error(f"Websocket error: {self._ws.exception()}")
                    break
        finally:
            self._on_socket_closed()

    # =================================================================
    # Message handling
    # =================================================================

    def _handle_frame(self, text: str) -> None:
        try:
            messages = decode_messages(text)
        except ValueError as e:
            logger.warning(f"Ignoring malformed frame: {e}")
            return

        for name, body in messages:
            self._handle_message(name, body)

    def _handle_message(self, name: str, body: dict) -> None:
        msg_id = body.get("Id", 0)
        future = self._pending.get(msg_id) if msg_id else None
        if future is not None:
            if not future.done():
                future.set_result({name: body})
            return

        if name == "DeviceAdded":
            device = self._add_device(body)
            self._events.put(DeviceAdded(device))
        elif name == "DeviceRemoved":
            with self._devices_lock:
                device = self._devices.pop(int(body.get("DeviceIndex", -1)), None)
            if device is not None:
                logger.info(f"Device removed: {device.name}")
                self._events.put(DeviceRemoved(device))
        elif name == "ScanningFinished":
            logger.debug("Server reports scanning finished")
        elif name == "Error":
            logger.warning(f"Server error: {body.get('ErrorMessage')}")
        else:
            logger.debug(f"Unhandled server message: {name}")

    def _add_device(self, info: dict) -> ButtplugDevice:
        device = ButtplugDevice(self, info)
        with self._devices_lock:
            self._devices[device.index] = device
        logger.info(f"Device available: [{device.index}] {device.name} (vibrate={device.has_vibration})")
        return device

    def _on_socket_closed(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError("Connection closed"))
        self._pending.clear()

        if self._closing or not self._connected:
            return

        logger.warning("Buttplug server closed the connection")
        self._connected = False
        with self._devices_lock:
            self._devices.clear()
        self._events.put(SessionDisconnected("server closed connection"))
