"""VibeCanvas: play hand-drawn intensity curves on connected vibration devices."""

__version__ = "0.1.0"

from .core import VibeController, interpolate
from .models import AppConfig, ConnectionState, MotorTrack, PatternPoint, VibePattern

__all__ = [
    "AppConfig",
    "ConnectionState",
    "MotorTrack",
    "PatternPoint",
    "VibeController",
    "VibePattern",
    "interpolate",
]
