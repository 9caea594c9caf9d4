"""
Live track-position playback.

Location samples arrive with server timestamps, over a jittery link, from a
clock that is not synchronised with ours. Playback runs a fixed delay behind
the estimated server time so there are nearly always two buffered samples to
interpolate between.
"""

import bisect
import math
import time
from collections import deque
from dataclasses import dataclass, field
from itertools import islice
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .models import LocationSample


@dataclass
class Point:
    x: float
    y: float
    t: float


@dataclass
class TrackPosition:
    """Point on a path with heading in degrees."""
    x: float
    y: float
    rotation: float


@dataclass
class DriverPosition:
    """Rendered state of one car."""
    driver_number: int
    x: float
    y: float
    trail: List[Tuple[float, float]] = field(default_factory=list)
    color: str = "#FFFFFF"
    name: str = ""


@dataclass
class Bounds:
    """Cumulative extent of every position seen; version bumps on growth."""
    min_x: float = math.inf
    min_y: float = math.inf
    max_x: float = -math.inf
    max_y: float = -math.inf
    version: int = 0

    def include(self, x: float, y: float) -> bool:
        changed = False
        if x < self.min_x:
            self.min_x = x
            changed = True
        if y < self.min_y:
            self.min_y = y
            changed = True
        if x > self.max_x:
            self.max_x = x
            changed = True
        if y > self.max_y:
            self.max_y = y
            changed = True
        if changed:
            self.version += 1
        return changed

    @property
    def is_empty(self) -> bool:
        return self.min_x == math.inf


class ClockSync:
    """Exponentially smoothed estimate of local clock minus server clock."""

    def __init__(self, alpha: float = 0.01):
        self.alpha = alpha
        self.skew: Optional[float] = None
        self.latest_server_t: float = 0.0

    def observe(self, server_t: float, local_now: float) -> None:
        """Update the estimate from a sample; only samples newer than any seen count."""
        if server_t <= self.latest_server_t:
            return
        self.latest_server_t = server_t

        observed = local_now - server_t
        if self.skew is None:
            self.skew = observed
        else:
            self.skew = self.skew * (1 - self.alpha) + observed * self.alpha

    def server_now(self, local_now: float) -> float:
        """Estimated current server time."""
        if self.skew is None:
            return self.latest_server_t
        return local_now - self.skew


def interpolate(history: Sequence[Point], playback_t: float) -> Optional[Tuple[float, float]]:
    """
    Position at `playback_t` from a time-ordered history.

    Linear between the bracketing pair; clamped to the first or last sample
    outside the buffered range. None for an empty history.
    """
    if not history:
        return None

    for p1, p2 in zip(history, islice(history, 1, None)):
        if p1.t <= playback_t < p2.t:
            ratio = (playback_t - p1.t) / (p2.t - p1.t)
            return p1.x + (p2.x - p1.x) * ratio, p1.y + (p2.y - p1.y) * ratio

    first, last = history[0], history[-1]
    if playback_t <= first.t:
        return first.x, first.y
    return last.x, last.y


class DriverTrack:
    """Buffered samples, visual position and ghost trail for one car."""

    HISTORY_LIMIT = 500
    TRAIL_MIN_DIST_SQ = 100.0

    def __init__(
        self,
        driver_number: int,
        x: float,
        y: float,
        trail_length: int = 150,
        color: str = "#FFFFFF",
        name: str = "",
    ):
        self.driver_number = driver_number
        self.history: Deque[Point] = deque(maxlen=self.HISTORY_LIMIT)
        self.trail: Deque[Point] = deque(maxlen=trail_length)
        self.visual_x = x
        self.visual_y = y
        self.color = color
        self.name = name or str(driver_number)

    def add_sample(self, x: float, y: float, t: float) -> None:
        """Buffer a sample, keeping the history ordered by timestamp."""
        point = Point(x, y, t)
        if not self.history or t >= self.history[-1].t:
            self.history.append(point)
            return

        if len(self.history) == self.history.maxlen:
            self.history.popleft()
        index = bisect.bisect_right([p.t for p in self.history], t)
        self.history.insert(index, point)

    def update(self, playback_t: float) -> Tuple[float, float]:
        """Move the visual position to `playback_t` and extend the trail."""
        position = interpolate(self.history, playback_t)
        if position is not None:
            self.visual_x, self.visual_y = position

        last = self.trail[-1] if self.trail else None
        if last is None or (
            (self.visual_x - last.x) ** 2 + (self.visual_y - last.y) ** 2 > self.TRAIL_MIN_DIST_SQ
        ):
            self.trail.append(Point(self.visual_x, self.visual_y, playback_t))

        return self.visual_x, self.visual_y

    def to_position(self) -> DriverPosition:
        return DriverPosition(
            driver_number=self.driver_number,
            x=self.visual_x,
            y=self.visual_y,
            trail=[(p.x, p.y) for p in self.trail],
            color=self.color,
            name=self.name,
        )


class TrackPlayback:
    """Turns a stream of location samples into smoothly animated positions."""

    OUTLINE_MIN_DIST_SQ = 400.0
    OUTLINE_LIMIT = 8000

    def __init__(
        self,
        playback_delay: float = 3.0,
        trail_length: int = 150,
        skew_alpha: float = 0.01,
        clock: Callable[[], float] = time.time,
    ):
        self.playback_delay = playback_delay
        self.trail_length = trail_length
        self.clock_sync = ClockSync(alpha=skew_alpha)
        self.drivers: Dict[int, DriverTrack] = {}
        self.outline: Dict[int, Deque[Tuple[float, float]]] = {}
        self.bounds = Bounds()
        self._clock = clock
        self._driver_info: Dict[int, Tuple[str, str]] = {}

    def set_driver_info(self, info: Dict[int, Tuple[str, str]]) -> None:
        """Colour and label per driver number, applied to known and future cars."""
        self._driver_info = dict(info)
        for number, track in self.drivers.items():
            if number in info:
                track.color, track.name = info[number]

    def ingest(self, sample: LocationSample, local_now: Optional[float] = None) -> None:
        """Buffer one location sample."""
        now = self._clock() if local_now is None else local_now
        self.clock_sync.observe(sample.t, now)

        track = self.drivers.get(sample.driver_number)
        if track is None:
            color, name = self._driver_info.get(sample.driver_number, ("#FFFFFF", ""))
            track = DriverTrack(
                sample.driver_number,
                sample.x,
                sample.y,
                trail_length=self.trail_length,
                color=color,
                name=name,
            )
            self.drivers[sample.driver_number] = track
        track.add_sample(sample.x, sample.y, sample.t)

        # Static outline built from raw positions
        layer = self.outline.get(sample.driver_number)
        if layer is None:
            layer = deque(maxlen=self.OUTLINE_LIMIT)
            self.outline[sample.driver_number] = layer
        if not layer or (
            (sample.x - layer[-1][0]) ** 2 + (sample.y - layer[-1][1]) ** 2 > self.OUTLINE_MIN_DIST_SQ
        ):
            layer.append((sample.x, sample.y))

        self.bounds.include(sample.x, sample.y)

    def playback_time(self, local_now: Optional[float] = None) -> float:
        """Smoothed server time minus the buffering delay."""
        now = self._clock() if local_now is None else local_now
        return self.clock_sync.server_now(now) - self.playback_delay

    def step(self, local_now: Optional[float] = None) -> Dict[int, DriverPosition]:
        """Advance every car to the current playback time."""
        playback_t = self.playback_time(local_now)
        positions = {}
        for number, track in self.drivers.items():
            track.update(playback_t)
            positions[number] = track.to_position()
        return positions

    def snapshot(self, local_now: Optional[float] = None) -> dict:
        """JSON-ready frame for the dashboard."""
        positions = self.step(local_now)
        bounds = None
        if not self.bounds.is_empty:
            bounds = {
                "min_x": self.bounds.min_x,
                "min_y": self.bounds.min_y,
                "max_x": self.bounds.max_x,
                "max_y": self.bounds.max_y,
                "version": self.bounds.version,
            }
        return {
            "type": "positions",
            "data": {
                "drivers": [
                    {
                        "driver_number": p.driver_number,
                        "x": p.x,
                        "y": p.y,
                        "trail": p.trail,
                        "color": p.color,
                        "name": p.name,
                    }
                    for p in positions.values()
                ],
                "bounds": bounds,
            },
        }

    def reset(self) -> None:
        """Forget all drivers and clock state (e.g., new session)."""
        self.clock_sync = ClockSync(alpha=self.clock_sync.alpha)
        self.drivers.clear()
        self.outline.clear()
        self.bounds = Bounds()


def position_on_path(points: Sequence[Tuple[float, float]], fraction: float) -> TrackPosition:
    """
    Position and heading along a closed polyline.

    Args:
        points: Outline vertices; the last connects back to the first.
        fraction: Distance along the lap, 0..1 (wrapped).

    Returns:
        TrackPosition with heading in degrees.
    """
    if not points:
        raise ValueError("Path has no points")
    if len(points) == 1:
        return TrackPosition(points[0][0], points[0][1], 0.0)

    fraction = fraction % 1.0
    segments = []
    total = 0.0
    for i, start in enumerate(points):
        end = points[(i + 1) % len(points)]
        length = math.hypot(end[0] - start[0], end[1] - start[1])
        segments.append((start, end, length))
        total += length

    if total == 0:
        return TrackPosition(points[0][0], points[0][1], 0.0)

    target = fraction * total
    travelled = 0.0
    for start, end, length in segments:
        if length > 0 and travelled + length >= target:
            ratio = (target - travelled) / length
            x = start[0] + (end[0] - start[0]) * ratio
            y = start[1] + (end[1] - start[1]) * ratio
            rotation = math.degrees(math.atan2(end[1] - start[1], end[0] - start[0]))
            return TrackPosition(x, y, rotation)
        travelled += length

    # Floating point leftovers land on the closing vertex
    start, end, _ = segments[-1]
    return TrackPosition(end[0], end[1], math.degrees(math.atan2(end[1] - start[1], end[0] - start[0])))
