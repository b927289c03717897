"""
Geometry Module - Minimum Enclosing Circle for Iris Rings

MediaPipe reports each iris as 4 boundary landmarks. The iris outline is
recovered as the smallest circle enclosing those points, found by brute
force over every 2-point (diameter) and 3-point (circumcircle) support set.

The search is O(N^3) and only meant for the fixed 4-point rings.
"""

import math
from dataclasses import dataclass
from itertools import combinations
from typing import Optional, Sequence, Tuple

from .utils import euclidean_distance

Point = Tuple[float, float]

# Containment slack (pixels) when testing candidate circles
ENCLOSE_TOLERANCE_PX = 1e-3

# Circumcircle denominator below which a triple is treated as collinear
COLLINEAR_EPS = 1e-6


@dataclass(frozen=True)
class Circle:
    """Circle in pixel coordinates."""
    center: Point
    radius: float

    @property
    def diameter(self) -> float:
        return 2.0 * self.radius

    def contains(self, point: Point, tolerance: float = ENCLOSE_TOLERANCE_PX) -> bool:
        return euclidean_distance(self.center, point) <= self.radius + tolerance


def circle_from_pair(a: Point, b: Point) -> Circle:
    """Circle having segment ab as its diameter."""
    center = ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)
    return Circle(center=center, radius=euclidean_distance(a, b) / 2.0)


def circle_from_triple(a: Point, b: Point, c: Point) -> Optional[Circle]:
    """
    Circumscribed circle of three points.

    Returns None when the points are (nearly) collinear and the bisector
    intersection is numerically unstable.
    """
    bx, by = b[0] - a[0], b[1] - a[1]
    cx, cy = c[0] - a[0], c[1] - a[1]
    e = bx * (a[0] + b[0]) + by * (a[1] + b[1])
    f = cx * (a[0] + c[0]) + cy * (a[1] + c[1])
    g = 2.0 * (bx * (c[1] - b[1]) - by * (c[0] - b[0]))

    if abs(g) < COLLINEAR_EPS:
        return None

    center = ((cy * e - by * f) / g, (bx * f - cx * e) / g)
    return Circle(center=center, radius=euclidean_distance(center, a))


def centroid_circle(points: Sequence[Point]) -> Circle:
    """Centroid with the mean centroid distance as radius."""
    n = len(points)
    cx = sum(p[0] for p in points) / n
    cy = sum(p[1] for p in points) / n
    radius = sum(euclidean_distance(p, (cx, cy)) for p in points) / n
    return Circle(center=(cx, cy), radius=radius)


def min_enclosing_circle(
    points: Sequence[Sequence[float]],
    tolerance: float = ENCLOSE_TOLERANCE_PX
) -> Circle:
    """
    Smallest circle containing all points.

    Args:
        points: Small set of (x, y) pixel coordinates (4 for an iris ring)
        tolerance: Containment slack in pixels

    Returns:
        The minimum enclosing circle, or the centroid circle when no
        2- or 3-point support set encloses every point.
    """
    pts = [(float(p[0]), float(p[1])) for p in points]
    if not pts:
        raise ValueError("Cannot fit a circle to an empty point set")

    best: Optional[Circle] = None

    def consider(candidate: Optional[Circle]) -> None:
        nonlocal best
        if candidate is None:
            return
        if not all(candidate.contains(p, tolerance) for p in pts):
            return
        if best is None or candidate.radius < best.radius:
            best = candidate

    for a, b in combinations(pts, 2):
        consider(circle_from_pair(a, b))

    for a, b, c in combinations(pts, 3):
        consider(circle_from_triple(a, b, c))

    if best is None or not math.isfinite(best.radius):
        return centroid_circle(pts)
    return best
