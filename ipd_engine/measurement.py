"""
Measurement Module - Per-Frame Iris Circles and Raw IPD

Converts one frame's normalized face landmarks into pixel-space iris
circles, the center-to-center IPD in pixels, and a bilateral consistency
check on the two iris diameters.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import BILATERAL_GATE_RATIO
from .geometry import Circle, min_enclosing_circle
from .utils import euclidean_distance

logger = logging.getLogger(__name__)


# MediaPipe FaceLandmarker iris rings (refined 478-point mesh)
LEFT_IRIS = (468, 469, 470, 471)
RIGHT_IRIS = (473, 474, 475, 476)

# Guards the diameter ratio against a zero-sized iris
MIN_DIAMETER_PX = 1e-6


@dataclass(frozen=True)
class FrameObservation:
    """Iris geometry measured in one frame."""
    left_iris: Circle
    right_iris: Circle
    ipd_px: float
    ratio: float
    gated: bool
    degenerate: bool = False

    @property
    def iris_px(self) -> Optional[float]:
        """Mean iris diameter, or None when the frame is gated or degenerate."""
        if self.gated or self.degenerate:
            return None
        return 0.5 * (self.left_iris.diameter + self.right_iris.diameter)


def landmark_xy(landmark) -> Tuple[float, float]:
    """Normalized (x, y) of a MediaPipe landmark or an (x, y[, z]) sequence."""
    if hasattr(landmark, "x") and hasattr(landmark, "y"):
        return float(landmark.x), float(landmark.y)
    return float(landmark[0]), float(landmark[1])


def landmarks_to_points(
    landmarks: Sequence,
    indices: Sequence[int],
    width: float,
    height: float
) -> List[Tuple[float, float]]:
    """
    Project selected normalized landmarks to pixel coordinates.

    Args:
        landmarks: Full landmark list or (N, >=2) array
        indices: Landmark indices to project
        width: Frame width in pixels
        height: Frame height in pixels

    Returns:
        List of (x, y) pixel points

    Raises:
        ValueError: If the set is too short or a selected landmark is not finite
    """
    if len(landmarks) <= max(indices):
        raise ValueError(
            f"Landmark set has {len(landmarks)} points; iris landmarks need "
            f"{max(indices) + 1}. Ensure the refined (iris) face mesh is used."
        )
    points = []
    for i in indices:
        x, y = landmark_xy(landmarks[i])
        px, py = x * width, y * height
        if not (math.isfinite(px) and math.isfinite(py)):
            raise ValueError(f"Landmark {i} projects to non-finite pixel ({px}, {py})")
        points.append((px, py))
    return points


class IrisObserver:
    """
    Builds a FrameObservation from one frame's landmarks.

    Each eye's iris is the minimum enclosing circle of its 4 ring
    landmarks. When the two diameters disagree by more than `gate_ratio`
    the gaze is assumed off-axis and the frame's diameter is not trusted;
    the IPD between centers is still reported.
    """

    def __init__(
        self,
        gate_ratio: float = BILATERAL_GATE_RATIO,
        left_indices: Sequence[int] = LEFT_IRIS,
        right_indices: Sequence[int] = RIGHT_IRIS
    ):
        self.gate_ratio = gate_ratio
        self.left_indices = tuple(left_indices)
        self.right_indices = tuple(right_indices)

    def fit_iris(self, landmarks, indices: Sequence[int], width: float, height: float) -> Circle:
        """Fit the enclosing circle of one iris ring."""
        return min_enclosing_circle(landmarks_to_points(landmarks, indices, width, height))

    def observe(self, landmarks, width: float, height: float) -> FrameObservation:
        """
        Measure both irises in one frame.

        Args:
            landmarks: Normalized face landmarks (MediaPipe list or array)
            width: Frame width in pixels
            height: Frame height in pixels

        Returns:
            FrameObservation for the frame
        """
        if isinstance(landmarks, np.ndarray) and landmarks.ndim != 2:
            raise ValueError(f"Expected an (N, 2+) landmark array, got shape {landmarks.shape}")

        left = self.fit_iris(landmarks, self.left_indices, width, height)
        right = self.fit_iris(landmarks, self.right_indices, width, height)

        ipd_px = euclidean_distance(left.center, right.center)

        d_max = max(left.diameter, right.diameter)
        d_min = min(left.diameter, right.diameter)
        ratio = d_max / max(d_min, MIN_DIAMETER_PX)
        degenerate = d_min <= 0
        gated = not degenerate and ratio > self.gate_ratio

        if degenerate:
            logger.debug(
                f"[Observer] Zero-sized iris: L={left.diameter:.2f}px R={right.diameter:.2f}px"
            )
        elif gated:
            logger.debug(
                f"[Observer] Iris gate: L={left.diameter:.2f}px R={right.diameter:.2f}px "
                f"ratio={ratio:.3f} > {self.gate_ratio}"
            )

        return FrameObservation(
            left_iris=left,
            right_iris=right,
            ipd_px=ipd_px,
            ratio=ratio,
            gated=gated,
            degenerate=degenerate
        )
