"""Data models for VibeCanvas."""

from .config import DEFAULT_SERVER_ADDRESS, AppConfig
from .enums import ConnectionState, PlaybackState
from .pattern import MotorTrack, PatternPoint, VibePattern

__all__ = [
    "AppConfig",
    "DEFAULT_SERVER_ADDRESS",
    # Enums
    "ConnectionState",
    "PlaybackState",
    # Models
    "MotorTrack",
    "PatternPoint",
    "VibePattern",
]
