"""Playback precondition exceptions."""

from .base import VibeCanvasError


class PlaybackError(VibeCanvasError):
    """A play request could not be started."""

    NoDevices: type["NoDevicesError"]
    InsufficientPoints: type["InsufficientPointsError"]


class NoDevicesError(PlaybackError):
    """Play requested with zero connected devices."""

    def __init__(self):
        super().__init__(
            user_message="No devices connected.",
            recoverable=True,
            recovery_hint="Scan for devices and make sure at least one is paired.",
        )


class InsufficientPointsError(PlaybackError):
    """No track in the pattern has enough points to form a curve."""

    def __init__(self, max_points: int):
        super().__init__(
            user_message="Draw a longer pattern first: a track needs at least two points.",
            technical_message=f"Largest track has {max_points} point(s), need at least 2",
            recoverable=True,
        )
        self.max_points = max_points


PlaybackError.NoDevices = NoDevicesError
PlaybackError.InsufficientPoints = InsufficientPointsError
