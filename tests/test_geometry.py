from __future__ import annotations

import math

import pytest

from ipd_engine.geometry import (
    Circle,
    centroid_circle,
    circle_from_pair,
    circle_from_triple,
    min_enclosing_circle,
)


def test_square_gives_circumscribed_circle() -> None:
    s = 8.0
    points = [(10.0, 10.0), (10.0 + s, 10.0), (10.0 + s, 10.0 + s), (10.0, 10.0 + s)]

    circle = min_enclosing_circle(points)

    assert circle.radius == pytest.approx(s * math.sqrt(2) / 2, abs=1e-3)
    assert circle.center[0] == pytest.approx(10.0 + s / 2, abs=1e-3)
    assert circle.center[1] == pytest.approx(10.0 + s / 2, abs=1e-3)


def test_collinear_points_give_finite_circle() -> None:
    points = [(0.0, 0.0), (1.0, 1.0), (3.0, 3.0)]

    circle = min_enclosing_circle(points)

    assert math.isfinite(circle.radius)
    assert math.isfinite(circle.center[0]) and math.isfinite(circle.center[1])
    assert all(circle.contains(p) for p in points)


def test_single_point_falls_back_to_centroid() -> None:
    circle = min_enclosing_circle([(4.0, -2.0)])

    assert circle.center == (4.0, -2.0)
    assert circle.radius == 0.0


def test_duplicate_points_give_zero_radius() -> None:
    circle = min_enclosing_circle([(5.0, 5.0)] * 4)

    assert circle.radius == pytest.approx(0.0)
    assert circle.center == pytest.approx((5.0, 5.0))


def test_triangle_uses_circumcircle_when_no_diameter_encloses() -> None:
    # Equilateral triangle: no pair-diameter circle contains the third vertex
    points = [(0.0, 0.0), (2.0, 0.0), (1.0, math.sqrt(3))]

    circle = min_enclosing_circle(points)

    assert circle.radius == pytest.approx(2 / math.sqrt(3), abs=1e-6)
    assert circle.center[0] == pytest.approx(1.0)
    assert circle.center[1] == pytest.approx(1 / math.sqrt(3))


def test_obtuse_triangle_uses_longest_side_as_diameter() -> None:
    points = [(0.0, 0.0), (10.0, 0.0), (5.0, 1.0)]

    circle = min_enclosing_circle(points)

    assert circle.center == pytest.approx((5.0, 0.0))
    assert circle.radius == pytest.approx(5.0)


def test_accepts_iris_ring_with_jitter() -> None:
    points = [(110.0, 50.0), (100.2, 60.0), (90.0, 50.1), (99.9, 40.0)]

    circle = min_enclosing_circle(points)

    assert all(circle.contains(p) for p in points)
    assert 9.9 < circle.radius < 10.2


def test_circle_from_triple_rejects_collinear() -> None:
    assert circle_from_triple((0.0, 0.0), (1.0, 0.0), (2.0, 0.0)) is None


def test_circle_from_pair_and_centroid_circle() -> None:
    assert circle_from_pair((0.0, 0.0), (4.0, 0.0)) == Circle(center=(2.0, 0.0), radius=2.0)

    circle = centroid_circle([(0.0, 0.0), (2.0, 0.0)])
    assert circle.center == (1.0, 0.0)
    assert circle.radius == pytest.approx(1.0)
    assert circle.diameter == pytest.approx(2.0)


def test_empty_point_set_raises() -> None:
    with pytest.raises(ValueError):
        min_enclosing_circle([])
