"""
Utility functions for the IPD measurement engine.
"""

import math
import time
from collections import deque
from typing import Deque, List, Optional, Sequence, Tuple

import cv2
import numpy as np


def euclidean_distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    """Calculate Euclidean distance between two 2D points."""
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


def format_value(value: Optional[float], digits: int = 2) -> str:
    """Format a possibly-missing number for display."""
    if value is None or not math.isfinite(value):
        return "N/A"
    return f"{value:.{digits}f}"


class FpsMeter:
    """
    Processing rate over the most recent frames.

    Keeps the last `window` tick timestamps; the rate is the number of
    intervals divided by the time they span.
    """

    def __init__(self, window: int = 60, clock=time.perf_counter):
        self._ticks: Deque[float] = deque(maxlen=window)
        self._clock = clock

    def tick(self) -> None:
        self._ticks.append(self._clock())

    @property
    def fps(self) -> float:
        if len(self._ticks) < 2:
            return 0.0
        span = self._ticks[-1] - self._ticks[0]
        if span <= 0:
            return 0.0
        return (len(self._ticks) - 1) / span


def format_hud_lines(
    result,
    frame_size: Tuple[int, int],
    fps: float = 0.0
) -> List[str]:
    """
    Build the heads-up display text for one processed frame.

    Args:
        result: IPDResult from IPDPipeline
        frame_size: (width, height) of the frame in pixels
        fps: Processing frame rate

    Returns:
        HUD lines, top to bottom
    """
    w, h = frame_size
    if not result.face_detected:
        return [
            "No face detected.",
            f"Proc FPS: ~{format_value(fps, 1)}",
        ]

    lines = [f"Frame: {w}x{h} | Proc FPS: ~{format_value(fps, 1)}"]

    if result.f_px is not None:
        lines.append(f"f_px: {format_value(result.f_px)} px")
    else:
        lines.append("f_px: N/A (calibrate)")

    personalized = " (personalized)" if result.iris_personalized else ""
    lines.append(f"iris_cm: {format_value(result.iris_cm, 3)} cm{personalized}")

    if result.distance_cm is not None:
        mode = " (fixed)" if result.distance_mode == "fixed" else " (est.)"
        lines.append(f"Distance: {format_value(result.distance_cm)} cm{mode}")
    else:
        lines.append("Distance: N/A")

    lines.append(f"IPD: {format_value(result.ipd_px)} px")
    lines.append(f"IPD: {format_value(result.ipd_cm)} cm")

    if result.warning:
        lines.append(f"Warn: {result.warning}")

    return lines


def draw_overlay(
    image: np.ndarray,
    lines: Sequence[str],
    iris_left=None,
    iris_right=None
) -> np.ndarray:
    """
    Draw iris circles and HUD text on a frame.

    Args:
        image: Input BGR image
        lines: HUD text lines
        iris_left: Left iris Circle (optional)
        iris_right: Right iris Circle (optional)

    Returns:
        Annotated copy of the image
    """
    annotated = image.copy()

    for iris in (iris_left, iris_right):
        if iris is None:
            continue
        center = (int(round(iris.center[0])), int(round(iris.center[1])))
        cv2.circle(annotated, center, max(1, int(round(iris.radius))), (0, 255, 0), 1)
        cv2.circle(annotated, center, 4, (255, 209, 0), -1)

    if iris_left is not None and iris_right is not None:
        cv2.line(
            annotated,
            (int(iris_left.center[0]), int(iris_left.center[1])),
            (int(iris_right.center[0]), int(iris_right.center[1])),
            (0, 0, 255), 1
        )

    y = 28
    for line in lines:
        cv2.putText(annotated, line, (12, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 3)
        cv2.putText(annotated, line, (12, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 209, 0), 1)
        y += 24

    return annotated
