"""Core playback engine and connection state machine."""

from .connection import ConnectionStateMachine
from .controller import VibeController
from .interpolation import TrackCurve, interpolate
from .scheduler import PlaybackScheduler, PlaybackSession, pattern_time
from .ticker import ThreadTicker, Ticker, TickerFactory, monotonic_ms

__all__ = [
    "ConnectionStateMachine",
    "PlaybackScheduler",
    "PlaybackSession",
    "ThreadTicker",
    "Ticker",
    "TickerFactory",
    "TrackCurve",
    "VibeController",
    "interpolate",
    "monotonic_ms",
    "pattern_time",
]
