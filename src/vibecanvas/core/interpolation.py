"""Piecewise-linear sampling of a track's intensity curve."""

from bisect import bisect_left
from collections.abc import Sequence

from vibecanvas.models import MotorTrack, PatternPoint


def interpolate(points: Sequence[PatternPoint], t: float) -> float:
    """
    Intensity of a track at time `t`.

    Args:
        points: Track points, sorted ascending by time
        t: Query time in ms

    Returns:
        Intensity in [0, 100]. No points gives 0, one point gives that
        point's intensity everywhere. Before the first point and after the
        last one the nearest endpoint is held; nothing is extrapolated.
    """
    return _sample(points, [p.time_ms for p in points], t)


class TrackCurve:
    """
    A track's points in time order with their times precomputed.

    Built once per playback session so each tick only pays for the lookup.
    Gives exactly the same values as interpolate().
    """

    __slots__ = ("points", "_times")

    def __init__(self, track: MotorTrack):
        self.points = track.sorted_points()
        self._times = [p.time_ms for p in self.points]

    def __len__(self) -> int:
        return len(self.points)

    def at(self, t: float) -> float:
        """Intensity at time `t` (ms)."""
        return _sample(self.points, self._times, t)


def _sample(points: Sequence[PatternPoint], times: Sequence[float], t: float) -> float:
    if not points:
        return 0.0

    first = points[0]
    if len(points) == 1 or t < times[0]:
        return first.intensity

    last = points[-1]
    if t > times[-1]:
        return last.intensity

    # First adjacent pair (a, b) with a.time <= t <= b.time
    hi = max(bisect_left(times, t), 1)
    a, b = points[hi - 1], points[hi]

    span = b.time_ms - a.time_ms
    if span == 0:
        return b.intensity
    return a.intensity + (b.intensity - a.intensity) * (t - a.time_ms) / span
