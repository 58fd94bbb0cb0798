"""Pytest fixtures for tests."""

from collections.abc import Callable

import pytest

from vibecanvas.core import VibeController
from vibecanvas.devices import SimulatedDevice, SimulatedTransport
from vibecanvas.models import AppConfig, MotorTrack, PatternPoint, VibePattern


class FakeClock:
    """Millisecond clock moved by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ManualTicker:
    """Ticker that only fires when told to."""

    def __init__(self, interval_s: float, callback: Callable[[], None]):
        self.interval_s = interval_s
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled

    def fire(self) -> None:
        """Run one tick, even if cancelled (mimics a tick already in flight)."""
        self.callback()


class ManualTickerFactory:
    """Records every ticker the scheduler creates."""

    def __init__(self):
        self.tickers: list[ManualTicker] = []

    def __call__(self, interval_s: float, callback: Callable[[], None]) -> ManualTicker:
        ticker = ManualTicker(interval_s, callback)
        self.tickers.append(ticker)
        return ticker

    @property
    def active(self) -> list[ManualTicker]:
        return [t for t in self.tickers if t.active]

    @property
    def last(self) -> ManualTicker:
        return self.tickers[-1]


def make_pattern(*tracks: list[tuple[float, float]], duration_ms: float = 1000.0, loop: bool = False) -> VibePattern:
    """Build a pattern from lists of (time_ms, intensity) pairs."""
    return VibePattern(
        name="test",
        duration_ms=duration_ms,
        loop=loop,
        tracks=[
            MotorTrack(motor_id=str(i), points=[PatternPoint(time_ms=t, intensity=v) for t, v in track])
            for i, track in enumerate(tracks)
        ],
    )


@pytest.fixture
def clock():
    """Fake millisecond clock."""
    return FakeClock()


@pytest.fixture
def tickers():
    """Manual ticker factory."""
    return ManualTickerFactory()


@pytest.fixture
def sim_devices():
    """Two vibrating simulated devices."""
    return [SimulatedDevice(0, "Sim A"), SimulatedDevice(1, "Sim B")]


@pytest.fixture
def transport(sim_devices):
    """Simulated transport that discovers sim_devices on scan."""
    return SimulatedTransport(list(sim_devices))


@pytest.fixture
def controller(transport, clock, tickers):
    """Controller on the simulated transport with manual time and no scan wait."""
    ctrl = VibeController(
        AppConfig(),
        transport_factory=lambda: transport,
        clock=clock,
        ticker_factory=tickers,
        sleep=lambda seconds: None,
    )
    yield ctrl
    ctrl.disconnect()


@pytest.fixture
def connected_controller(controller):
    """Controller that is connected and has scanned."""
    controller.connect()
    controller.scan()
    return controller


@pytest.fixture
def ramp_pattern():
    """One track ramping 0 -> 100 over one second."""
    return make_pattern([(0, 0), (1000, 100)], duration_ms=1000)


@pytest.fixture
def pattern_factory():
    """The make_pattern helper, as a fixture."""
    return make_pattern
