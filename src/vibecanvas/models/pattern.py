"""Pattern data model: points, motor tracks and whole patterns.

Field names are snake_case in Python; the camelCase names of the pattern
document format (`timeMs`, `motorId`, `durationMs`, `createdAt`) are accepted
as aliases and used when serializing with `by_alias=True`.
"""

import time
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PatternPoint(BaseModel):
    """One authored sample of a track."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    time_ms: float = Field(ge=0, alias="timeMs", description="Offset from pattern start (ms)")
    intensity: float = Field(ge=0, le=100, description="Intensity (0-100)")


class MotorTrack(BaseModel):
    """
    One channel of intensity-over-time data.

    Tracks are bound to devices by their position in the pattern, not by
    `motor_id`; the id is informational.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    motor_id: str = Field(default="0", alias="motorId", description="Motor channel label")
    points: list[PatternPoint] = Field(default_factory=list, description="Authored points")

    def sorted_points(self) -> list[PatternPoint]:
        """
        Return the points ordered by time.

        The sort is stable, so points sharing a time keep their authored order.
        """
        return sorted(self.points, key=lambda p: p.time_ms)

    @property
    def is_playable(self) -> bool:
        """Check if the track has enough points to form a curve."""
        return len(self.points) >= 2

    @classmethod
    def from_samples(cls, motor_id: str, samples: Iterable[tuple[float, float]]) -> "MotorTrack":
        """
        Build a track from raw (time_ms, intensity) pairs in any order.

        Pointer input can overshoot the drawing surface, so times are clamped
        at 0 and intensities into 0-100.
        """
        points = [
            PatternPoint(time_ms=max(0.0, t), intensity=min(100.0, max(0.0, i)))
            for t, i in samples
        ]
        points.sort(key=lambda p: p.time_ms)
        return cls(motor_id=motor_id, points=points)


class VibePattern(BaseModel):
    """A timed multi-track intensity curve."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: Literal["1.0"] = Field(default="1.0", description="Document format version")
    name: str = Field(default="Untitled", description="Pattern name")
    duration_ms: float = Field(gt=0, alias="durationMs", description="Period of the pattern (ms)")
    loop: bool = Field(default=False, description="Restart from the top after duration_ms")
    tracks: list[MotorTrack] = Field(min_length=1, description="Tracks, bound to devices by position")
    created_at: int = Field(
        default_factory=lambda: int(time.time() * 1000),
        alias="createdAt",
        description="Creation time (epoch ms)",
    )

    def playable_tracks(self) -> list[MotorTrack]:
        """Tracks with at least two points."""
        return [track for track in self.tracks if track.is_playable]

    @property
    def has_playable_track(self) -> bool:
        """Check if at least one track has two or more points."""
        return bool(self.playable_tracks())

    @property
    def max_points(self) -> int:
        """Point count of the largest track."""
        return max(len(track.points) for track in self.tracks)

    def to_json(self) -> str:
        """Serialize using the document field names."""
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, text: str) -> "VibePattern":
        """Parse a pattern document."""
        return cls.model_validate_json(text)
