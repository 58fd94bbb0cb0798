"""Tick-driven playback of a VibePattern onto the connected devices."""

import logging
import threading
from collections.abc import Callable
from threading import RLock
from typing import Optional

from vibecanvas.core.interpolation import TrackCurve
from vibecanvas.core.ticker import ThreadTicker, Ticker, TickerFactory, monotonic_ms
from vibecanvas.devices.protocols import DeviceHandle
from vibecanvas.exceptions import (
    DeviceDispatchError,
    InsufficientPointsError,
    NoDevicesError,
    collect_errors,
)
from vibecanvas.models import ConnectionState, PlaybackState, VibePattern
from vibecanvas.protocols import PlaybackEvent, PlaybackObserver
from vibecanvas.utils import ObserverManager

logger = logging.getLogger(__name__)

DeviceSource = Callable[[], list[DeviceHandle]]


def pattern_time(elapsed_ms: float, duration_ms: float, loop: bool) -> Optional[float]:
    """
    Map elapsed session time to a position inside the pattern.

    Returns:
        The position in [0, duration_ms), or None once a non-looping pattern
        has run its full duration. Looping wraps time, not values.
    """
    if elapsed_ms >= duration_ms and not loop:
        return None
    return elapsed_ms % duration_ms


class PlaybackSession:
    """
    Handle for one play() call.

    Acts as the cancellation token: ticks check `is_active` before doing
    anything, and the session is invalidated by stop(), a replacing play(),
    a lost connection, or natural completion.
    """

    def __init__(self, pattern: VibePattern, start_ms: float):
        self.pattern = pattern
        self.curves = [TrackCurve(track) for track in pattern.tracks]
        self.start_ms = start_ms
        self.ticker: Optional[Ticker] = None
        self.tick_count = 0
        self.failure_count = 0
        self.last_error: Optional[DeviceDispatchError] = None
        self._done = threading.Event()

    @property
    def is_active(self) -> bool:
        return not self._done.is_set()

    def invalidate(self) -> None:
        """Cancel the ticker and mark the session finished."""
        self._done.set()
        if self.ticker is not None:
            self.ticker.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session ends. Returns False on timeout."""
        return self._done.wait(timeout)


class PlaybackScheduler:
    """
    Owns the repeating timer that samples a pattern and drives devices.

    Track i is sent to the device at position i of the current device list;
    tracks beyond the device count are dropped. The device list is read on
    every tick, so adds and removes mid-session shift the binding.

    At most one session exists at a time. Session state and dispatch are
    guarded by `lock`, which the controller shares with the connection
    machine so the device list cannot change in the middle of a tick.

    Implements:
    - ConnectionObserver: reports sessions halted by a lost connection
    """

    def __init__(
        self,
        device_source: DeviceSource,
        lock: Optional[RLock] = None,
        tick_interval_ms: float = 30.0,
        clock: Callable[[], float] = monotonic_ms,
        ticker_factory: TickerFactory = ThreadTicker,
    ):
        """
        Initialize the scheduler.

        Args:
            device_source: Returns the current device list snapshot
            lock: Lock shared with the connection machine (created if None)
            tick_interval_ms: Time between ticks
            clock: Millisecond clock; injectable for tests
            ticker_factory: Builds the repeating timer from (interval_s, callback)
        """
        self._device_source = device_source
        self._lock = lock or RLock()
        self._tick_interval_ms = tick_interval_ms
        self._clock = clock
        self._ticker_factory = ticker_factory
        self._session: Optional[PlaybackSession] = None
        self._halted: list[PlaybackSession] = []
        self._observers = ObserverManager[PlaybackObserver](observer_type_name="playback")

    # =================================================================
    # Operations
    # =================================================================

    def play(self, pattern: VibePattern) -> PlaybackSession:
        """
        Start playing a pattern, replacing any running session.

        Raises:
            NoDevicesError: No device is connected
            InsufficientPointsError: No track has at least two points
        """
        with self._lock:
            if not self._device_source():
                raise NoDevicesError()
            if not pattern.has_playable_track:
                raise InsufficientPointsError(pattern.max_points)

            replaced = self._end_session()

            session = PlaybackSession(pattern, start_ms=self._clock())
            session.ticker = self._ticker_factory(
                self._tick_interval_ms / 1000.0, lambda: self._tick(session)
            )
            self._session = session
            session.ticker.start()

        logger.info(
            f"Playing '{pattern.name}': {len(pattern.tracks)} track(s), "
            f"{pattern.duration_ms:.0f} ms, loop={pattern.loop}"
        )
        if replaced is not None:
            self._observers.notify("on_playback_event", PlaybackEvent.STOPPED, replaced.pattern)
        self._observers.notify("on_playback_event", PlaybackEvent.STARTED, pattern)
        return session

    def stop(self) -> None:
        """
        Cancel any session and stop every known device.

        Safe to call when idle; stop-all is still sent and errors are only logged.
        """
        with self._lock:
            stopped = self._end_session()
            self._stop_all(self._device_source())

        if stopped is not None:
            logger.info(f"Stopped '{stopped.pattern.name}'")
            self._observers.notify("on_playback_event", PlaybackEvent.STOPPED, stopped.pattern)

    def halt(self) -> None:
        """
        Cancel any session without sending commands (devices are gone).

        The connection machine calls this with the shared lock held, at the
        moment the session is lost, so a session started after a reconnect
        is never affected. STOPPED is reported by the DISCONNECTED
        notification that follows.
        """
        with self._lock:
            stopped = self._end_session()
            if stopped is not None:
                self._halted.append(stopped)
                logger.info(f"Halted '{stopped.pattern.name}': connection lost")

    # =================================================================
    # Tick
    # =================================================================

    def _tick(self, session: PlaybackSession) -> None:
        finished = False
        with self._lock:
            if not session.is_active or session is not self._session:
                return

            pattern = session.pattern
            elapsed = self._clock() - session.start_ms
            position = pattern_time(elapsed, pattern.duration_ms, pattern.loop)
            devices = self._device_source()

            if position is None:
                self._end_session()
                self._stop_all(devices)
                finished = True
            else:
                session.tick_count += 1
                self._dispatch(session, position, devices)

        if finished:
            logger.info(f"Finished '{session.pattern.name}' after {session.tick_count} tick(s)")
            self._observers.notify("on_playback_event", PlaybackEvent.FINISHED, session.pattern)

    def _dispatch(self, session: PlaybackSession, position: float, devices: list[DeviceHandle]) -> None:
        for index, curve in enumerate(session.curves):
            if index >= len(devices):
                break

            device = devices[index]
            if not device.has_vibration:
                continue

            level = curve.at(position) / 100.0
            try:
                device.send_vibration(level)
            except Exception as e:
                error = DeviceDispatchError(index, device.name, e)
                session.failure_count += 1
                session.last_error = error
                logger.warning(error.technical_message)

    # =================================================================
    # Helpers (call with lock held)
    # =================================================================

    def _end_session(self) -> Optional[PlaybackSession]:
        session, self._session = self._session, None
        if session is not None:
            session.invalidate()
        return session

    def _stop_all(self, devices: list[DeviceHandle]) -> None:
        collector = collect_errors("stop all devices")
        for device in devices:
            with collector.try_operation(f"stop {device.name}"):
                device.stop()
        if collector.has_errors:
            logger.warning(collector.get_summary())

    # =================================================================
    # ConnectionObserver Protocol
    # =================================================================

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        if state != ConnectionState.DISCONNECTED:
            return
        with self._lock:
            halted, self._halted = self._halted, []
        for session in halted:
            self._observers.notify("on_playback_event", PlaybackEvent.STOPPED, session.pattern)

    # =================================================================
    # Observers & queries
    # =================================================================

    def register_observer(self, observer: PlaybackObserver) -> None:
        self._observers.register(observer)

    def unregister_observer(self, observer: PlaybackObserver) -> None:
        self._observers.unregister(observer)

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return PlaybackState.RUNNING if self._session is not None else PlaybackState.IDLE

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.RUNNING

    @property
    def session(self) -> Optional[PlaybackSession]:
        """The active session, if any."""
        with self._lock:
            return self._session
