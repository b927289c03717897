"""
Temporal Filtering Module - Robust Median Stream for Video Sequences

Smooths per-frame measurements (iris diameter, IPD in pixels) with a
bounded median window. New values far from the window median, measured in
scaled MADs, are rejected as single-frame detection jitter.
"""

import math
from collections import deque
from typing import Deque, Iterable, List, Optional

import numpy as np

# Scale factor making the MAD a consistent estimator of a normal std-dev
MAD_SCALE = 1.4826

# Window must hold this many values before outliers are rejected
MIN_VALUES_FOR_REJECTION = 5

# Lower bound on the MAD used for the rejection threshold
MAD_FLOOR = 1.0


def _median(values: Iterable[float]) -> float:
    return float(np.median(np.fromiter(values, dtype=np.float64)))


class RobustStream:
    """
    Outlier-rejecting median filter over the last `window` values.

    `add()` returns the current estimate (window median) after the value
    has been considered; None means no estimate yet.
    """

    def __init__(self, window: int = 21, k: float = 3.5):
        """
        Initialize the stream.

        Args:
            window: Maximum number of values kept
            k: Rejection threshold in scaled MADs
        """
        if window < 1:
            raise ValueError(f"window must be positive, got {window}")
        self.window = window
        self.k = k
        self._values: Deque[float] = deque(maxlen=window)
        self.last_rejected = False

    def __len__(self) -> int:
        return len(self._values)

    @property
    def values(self) -> List[float]:
        return list(self._values)

    def add(self, x: Optional[float]) -> Optional[float]:
        """
        Offer a new measurement.

        Args:
            x: Measurement, or None when the frame had none. Non-finite
                values count as missing.

        Returns:
            Median of the window after the update, or None if empty
        """
        self.last_rejected = False
        if x is None:
            return self.current()

        x = float(x)
        if not math.isfinite(x):
            return self.current()

        if len(self._values) >= MIN_VALUES_FOR_REJECTION:
            med = _median(self._values)
            mad = MAD_SCALE * _median(abs(v - med) for v in self._values)
            threshold = self.k * max(mad, MAD_FLOOR)
            if abs(x - med) > threshold:
                self.last_rejected = True
                return self.current()

        self._values.append(x)
        return self.current()

    def current(self) -> Optional[float]:
        """Median of the window, or None if empty."""
        if not self._values:
            return None
        return _median(self._values)

    def clear(self) -> None:
        """Drop all history."""
        self._values.clear()
        self.last_rejected = False


def smooth_sequence(
    values: Iterable[Optional[float]],
    window: int = 21,
    k: float = 3.5
) -> List[Optional[float]]:
    """
    Run a fresh RobustStream over a sequence of measurements.

    Args:
        values: Measurements in frame order (None for missing frames)
        window: Stream window size
        k: Rejection threshold in scaled MADs

    Returns:
        The stream estimate after each value
    """
    stream = RobustStream(window=window, k=k)
    return [stream.add(v) for v in values]
