from __future__ import annotations

from typing import Callable, Tuple

import numpy as np
import pytest

from ipd_engine.measurement import FrameObservation, LEFT_IRIS, RIGHT_IRIS
from ipd_engine.geometry import Circle

FRAME_W = 1280
FRAME_H = 720
NUM_LANDMARKS = 478


def _place_ring(landmarks: np.ndarray, indices, center_px, radius_px) -> None:
    cx, cy = center_px
    offsets = [(radius_px, 0.0), (0.0, radius_px), (-radius_px, 0.0), (0.0, -radius_px)]
    for idx, (dx, dy) in zip(indices, offsets):
        landmarks[idx] = [(cx + dx) / FRAME_W, (cy + dy) / FRAME_H]


@pytest.fixture
def make_landmarks() -> Callable[..., np.ndarray]:
    """Build a normalized 478-point landmark array with circular iris rings."""

    def _make(
        left_center: Tuple[float, float] = (540.0, 360.0),
        left_radius: float = 10.0,
        right_center: Tuple[float, float] = (740.0, 360.0),
        right_radius: float = 10.0,
    ) -> np.ndarray:
        landmarks = np.full((NUM_LANDMARKS, 2), 0.5)
        _place_ring(landmarks, LEFT_IRIS, left_center, left_radius)
        _place_ring(landmarks, RIGHT_IRIS, right_center, right_radius)
        return landmarks

    return _make


@pytest.fixture
def make_observation() -> Callable[..., FrameObservation]:
    """Build a FrameObservation directly from iris diameters."""

    def _make(
        left_diameter: float = 20.0,
        right_diameter: float | None = None,
        ipd_px: float = 200.0,
        gated: bool = False,
    ) -> FrameObservation:
        right_diameter = left_diameter if right_diameter is None else right_diameter
        left = Circle(center=(0.0, 0.0), radius=left_diameter / 2)
        right = Circle(center=(ipd_px, 0.0), radius=right_diameter / 2)
        ratio = max(left_diameter, right_diameter) / min(left_diameter, right_diameter)
        return FrameObservation(left_iris=left, right_iris=right, ipd_px=ipd_px, ratio=ratio, gated=gated)

    return _make
