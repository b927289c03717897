"""
Estimation Module - Pinhole Distance and IPD in Centimeters

Pinhole camera model:
    distance_cm = f_px * iris_cm / iris_px
    ipd_cm      = ipd_px * distance_cm / f_px
"""

from dataclasses import dataclass
from typing import Optional

from .config import FIXED_DISTANCE_CM, IPD_OFFSET_CM

DISTANCE_FIXED = "fixed"
DISTANCE_ESTIMATED = "estimated"
DISTANCE_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DistanceEstimate:
    """Camera-to-face distance and how it was obtained."""
    distance_cm: Optional[float]
    mode: str

    @property
    def available(self) -> bool:
        return self.distance_cm is not None


class DistanceEstimator:
    """Camera distance from the smoothed iris diameter, or the fixed reference distance."""

    def __init__(self, fixed_distance_cm: float = FIXED_DISTANCE_CM):
        self.fixed_distance_cm = fixed_distance_cm

    def estimate(
        self,
        iris_px: Optional[float],
        f_px: Optional[float],
        iris_cm: float,
        use_fixed_distance: bool = False
    ) -> DistanceEstimate:
        """
        Estimate camera distance.

        Args:
            iris_px: Smoothed iris diameter in pixels
            f_px: Focal length in pixels (None until calibrated)
            iris_cm: Physical iris diameter in cm
            use_fixed_distance: Report the fixed reference distance instead

        Returns:
            DistanceEstimate tagged fixed, estimated or unavailable
        """
        if use_fixed_distance:
            return DistanceEstimate(self.fixed_distance_cm, DISTANCE_FIXED)
        if f_px and iris_px:
            return DistanceEstimate(f_px * iris_cm / iris_px, DISTANCE_ESTIMATED)
        return DistanceEstimate(None, DISTANCE_UNAVAILABLE)


class IPDEstimator:
    """
    Physical IPD from the smoothed pixel IPD at a known distance.

    `offset_cm` is added to every available result for display.
    """

    def __init__(self, offset_cm: float = IPD_OFFSET_CM):
        self.offset_cm = offset_cm

    def raw_ipd_cm(
        self,
        ipd_px: Optional[float],
        distance_cm: Optional[float],
        f_px: Optional[float]
    ) -> Optional[float]:
        """Uncorrected IPD in cm, or None when any input is missing."""
        if not (ipd_px and distance_cm and f_px):
            return None
        return ipd_px * distance_cm / f_px

    def estimate(
        self,
        ipd_px: Optional[float],
        distance_cm: Optional[float],
        f_px: Optional[float]
    ) -> Optional[float]:
        """Displayed IPD in cm (raw plus offset), or None."""
        raw = self.raw_ipd_cm(ipd_px, distance_cm, f_px)
        if raw is None:
            return None
        return raw + self.offset_cm
