"""Domain events for observer pattern.

- Playback events: Scheduler session lifecycle
"""

from enum import Enum


class PlaybackEvent(Enum):
    """Events from the playback scheduler."""

    STARTED = "started"    # A session began (replacing any previous one)
    STOPPED = "stopped"    # Session cancelled by stop(), disconnect or replacement
    FINISHED = "finished"  # Non-looping pattern reached its duration
