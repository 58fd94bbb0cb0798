"""CLI commands for vibecanvas."""

from .config import config
from .devices import devices
from .play import play
from .vibrate import vibrate

__all__ = ["config", "devices", "play", "vibrate"]
