"""
Geometry primitives for archmap.

Everything here works in *local* (canvas) coordinates unless a name says
otherwise.  The viewport is the only bridge to screen space: a single
affine transform (translate by pan, then scale) applied to the whole
canvas, nodes and connectors together.  Panning or zooming therefore never
invalidates a connector path.

Contents:

    Point / Rect        - plain coordinate tuples
    Viewport            - pan/scale state and the local <-> screen mapping
    node_center         - center of a node's rectangle
    edge_point          - where a ray from the center leaves the rectangle
    cubic_point         - evaluate a cubic bezier at parameter t
    ArcLengthTable      - sample a cubic bezier by distance travelled
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from typing import NamedTuple

from .config import DEFAULT_CONFIG, EngineConfig
from .models import Node


class Point(NamedTuple):
    x: float
    y: float


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    def contains(self, p: Point) -> bool:
        return self.x <= p.x <= self.x + self.width and self.y <= p.y <= self.y + self.height


def clamp(value: float, low: float, high: float) -> float:
    return min(max(low, value), high)


def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


# ---------------------------------------------------------------------------
# Viewport
# ---------------------------------------------------------------------------

@dataclass
class Viewport:
    """Pan and scale of the canvas.

    ``local_to_screen(p) = p * scale + pan`` and
    ``screen_to_local(p) = (p - pan) / scale``.  Scale is clamped to the
    configured bounds on every write through ``set_scale``/``zoom``.
    """
    pan_x: float = DEFAULT_CONFIG.initial_pan_x
    pan_y: float = DEFAULT_CONFIG.initial_pan_y
    scale: float = DEFAULT_CONFIG.initial_scale
    min_scale: float = DEFAULT_CONFIG.min_scale
    max_scale: float = DEFAULT_CONFIG.max_scale

    @classmethod
    def from_config(cls, config: EngineConfig) -> "Viewport":
        return cls(
            pan_x=config.initial_pan_x,
            pan_y=config.initial_pan_y,
            scale=clamp(config.initial_scale, config.min_scale, config.max_scale),
            min_scale=config.min_scale,
            max_scale=config.max_scale,
        )

    def screen_to_local(self, p: Point) -> Point:
        return Point((p.x - self.pan_x) / self.scale, (p.y - self.pan_y) / self.scale)

    def local_to_screen(self, p: Point) -> Point:
        return Point(p.x * self.scale + self.pan_x, p.y * self.scale + self.pan_y)

    def set_pan(self, x: float, y: float) -> None:
        self.pan_x = x
        self.pan_y = y

    def set_scale(self, scale: float) -> float:
        self.scale = clamp(scale, self.min_scale, self.max_scale)
        return self.scale

    def zoom(self, wheel_delta: float, sensitivity: float = DEFAULT_CONFIG.zoom_sensitivity) -> float:
        """Apply a wheel delta.  Positive deltas zoom out.

        Zoom is anchored at the local origin: pan is left untouched.
        """
        return self.set_scale(self.scale - wheel_delta * sensitivity)

    def center_on(self, p: Point, viewport_width: float, viewport_height: float) -> None:
        """Pan so the local point ``p`` lands in the middle of the screen."""
        self.pan_x = viewport_width / 2 - p.x * self.scale
        self.pan_y = viewport_height / 2 - p.y * self.scale

    def matrix(self) -> tuple[float, float, float, float, float, float]:
        """The shared transform as an SVG/canvas ``matrix(a b c d e f)``."""
        return (self.scale, 0.0, 0.0, self.scale, self.pan_x, self.pan_y)

    def css_transform(self) -> str:
        return f"translate({self.pan_x}px, {self.pan_y}px) scale({self.scale})"

    def to_dict(self) -> dict:
        return {"pan_x": self.pan_x, "pan_y": self.pan_y, "scale": self.scale}


# ---------------------------------------------------------------------------
# Node geometry
# ---------------------------------------------------------------------------

def node_rect(node: Node) -> Rect:
    return Rect(node.x, node.y, node.width, node.height)


def node_screen_rect(node: Node, viewport: Viewport) -> Rect:
    top_left = viewport.local_to_screen(Point(node.x, node.y))
    return Rect(top_left.x, top_left.y, node.width * viewport.scale, node.height * viewport.scale)


def node_center(node: Node) -> Point:
    return Point(node.x + node.width / 2, node.y + node.height / 2)


def edge_point(node: Node, toward: Point) -> Point:
    """Return the point where a ray from the node's center toward ``toward``
    crosses the node's rectangle.

    When ``toward`` coincides with the center there is no direction; the
    center itself is returned.
    """
    center = node_center(node)
    dx = toward.x - center.x
    dy = toward.y - center.y
    if dx == 0 and dy == 0:
        return center

    # An axis with no delta never limits the ray.
    tx = (node.width / 2) / abs(dx) if dx else math.inf
    ty = (node.height / 2) / abs(dy) if dy else math.inf
    t = min(tx, ty)
    return Point(center.x + dx * t, center.y + dy * t)


# ---------------------------------------------------------------------------
# Cubic bezier
# ---------------------------------------------------------------------------

def cubic_point(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    u = 1 - t
    x = u**3 * p0.x + 3 * u**2 * t * p1.x + 3 * u * t**2 * p2.x + t**3 * p3.x
    y = u**3 * p0.y + 3 * u**2 * t * p1.y + 3 * u * t**2 * p2.y + t**3 * p3.y
    return Point(x, y)


def sample_cubic(p0: Point, p1: Point, p2: Point, p3: Point, steps: int) -> list[Point]:
    """Evenly spaced parameter samples, ``steps + 1`` points including both ends."""
    return [cubic_point(p0, p1, p2, p3, i / steps) for i in range(steps + 1)]


class ArcLengthTable:
    """Distance-along-curve lookup for a cubic bezier.

    The curve is flattened into ``steps`` chords; the cumulative chord
    lengths map a distance to a chord, and the point is interpolated
    linearly inside it.  Sampling at evenly spaced distances therefore moves
    at constant visual speed however much the curve bends.
    """

    def __init__(self, p0: Point, p1: Point, p2: Point, p3: Point, steps: int = DEFAULT_CONFIG.bezier_samples):
        self.points = sample_cubic(p0, p1, p2, p3, max(1, steps))
        self.cumulative = [0.0]
        for a, b in zip(self.points, self.points[1:]):
            self.cumulative.append(self.cumulative[-1] + distance(a, b))

    @property
    def total_length(self) -> float:
        return self.cumulative[-1]

    def point_at_length(self, length: float) -> Point:
        total = self.total_length
        if total == 0:
            return self.points[0]
        length = clamp(length, 0.0, total)
        i = bisect.bisect_left(self.cumulative, length)
        if i == 0:
            return self.points[0]
        seg_start = self.cumulative[i - 1]
        seg_len = self.cumulative[i] - seg_start
        f = (length - seg_start) / seg_len if seg_len else 0.0
        a, b = self.points[i - 1], self.points[i]
        return Point(a.x + (b.x - a.x) * f, a.y + (b.y - a.y) * f)

    def point_at_fraction(self, fraction: float, reverse: bool = False) -> Point:
        """Point at ``fraction`` of the total length, from the end when ``reverse``."""
        fraction = clamp(fraction, 0.0, 1.0)
        if reverse:
            fraction = 1.0 - fraction
        return self.point_at_length(self.total_length * fraction)

    def distance_to(self, p: Point) -> float:
        """Shortest distance from ``p`` to the flattened curve."""
        best = math.inf
        for a, b in zip(self.points, self.points[1:]):
            best = min(best, _segment_distance(p, a, b))
        return best if best != math.inf else distance(p, self.points[0])


def _segment_distance(p: Point, a: Point, b: Point) -> float:
    dx = b.x - a.x
    dy = b.y - a.y
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(p, a)
    t = clamp(((p.x - a.x) * dx + (p.y - a.y) * dy) / length_sq, 0.0, 1.0)
    return distance(p, Point(a.x + dx * t, a.y + dy * t))
