"""
Core IPD Measurement Engine

This module provides the IPDPipeline class that turns a stream of face
landmark frames into smoothed camera distance and interpupillary distance,
and exposes the calibration sessions that make those numbers metric.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .calibration import CalibrationController, CalibrationKind, CalibrationResult
from .config import IPDConfig
from .estimation import DISTANCE_UNAVAILABLE, DistanceEstimator, IPDEstimator
from .geometry import Circle
from .measurement import FrameObservation, IrisObserver
from .storage import CalibrationConstants, CalibrationStore, InMemoryStore, KeyValueStore
from .temporal_filter import RobustStream

logger = logging.getLogger(__name__)


WARN_OFF_AXIS = "off_axis_gaze"
WARN_OUTLIER = "outlier_rejected"
WARN_NO_FACE = "no_face"

# (landmarks, frame_width, frame_height), or None when no face was found
LandmarkFrame = Tuple[object, float, float]
LandmarkProvider = Callable[[], Optional[LandmarkFrame]]


def _circle_dict(circle: Optional[Circle]) -> Optional[dict]:
    if circle is None:
        return None
    return {
        "center": [circle.center[0], circle.center[1]],
        "radius": circle.radius,
        "diameter": circle.diameter,
    }


@dataclass
class IPDResult:
    """
    Result of processing one frame.

    Missing quantities are None; distance_mode tells whether the distance
    is the fixed reference, an estimate, or unavailable.
    """

    face_detected: bool = False

    # Smoothed pixel measurements
    iris_px: Optional[float] = None
    ipd_px: Optional[float] = None

    # Metric results
    distance_cm: Optional[float] = None
    distance_mode: str = DISTANCE_UNAVAILABLE
    ipd_cm: Optional[float] = None

    # Calibration in effect for this frame
    f_px: Optional[float] = None
    iris_cm: Optional[float] = None
    iris_personalized: bool = False

    # This frame's raw geometry
    left_iris: Optional[Circle] = None
    right_iris: Optional[Circle] = None

    warning: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        """True when an IPD in cm could be computed."""
        return self.ipd_cm is not None

    def to_dict(self) -> dict:
        """Convert result to dictionary for serialization."""
        return {
            "face_detected": self.face_detected,
            "distance_cm": self.distance_cm,
            "distance_mode": self.distance_mode,
            "ipd_px": self.ipd_px,
            "ipd_cm": self.ipd_cm,
            "iris_px": self.iris_px,
            "f_px": self.f_px,
            "iris_cm": self.iris_cm,
            "iris_personalized": self.iris_personalized,
            "left_iris": _circle_dict(self.left_iris),
            "right_iris": _circle_dict(self.right_iris),
            "warning": self.warning,
        }

    def __str__(self) -> str:
        if not self.is_valid:
            return f"IPDResult(unavailable, warning={self.warning})"
        return (
            f"IPDResult(IPD={self.ipd_cm:.2f}cm, "
            f"distance={self.distance_cm:.1f}cm {self.distance_mode})"
        )


class IPDPipeline:
    """
    Main engine for measuring IPD from a live landmark stream.

    Per frame: iris circles and raw IPD are measured, folded into two
    robust median streams, and converted to cm with the pinhole model.

    Usage:
        pipeline = IPDPipeline(store=InMemoryStore())
        result = pipeline.process_landmarks(landmarks, width, height)
        print(result.ipd_cm)
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        config: Optional[IPDConfig] = None,
        clock=None
    ):
        """
        Initialize the pipeline.

        Args:
            store: Key-value store holding the calibration (in-memory if None)
            config: Pipeline constants
            clock: Default time source for calibration sessions
        """
        self.config = config or IPDConfig()

        self.observer = IrisObserver(gate_ratio=self.config.gate_ratio)
        self.iris_stream = RobustStream(self.config.stream_window, self.config.stream_reject_k)
        self.ipd_stream = RobustStream(self.config.stream_window, self.config.stream_reject_k)
        self.distance_estimator = DistanceEstimator(self.config.fixed_distance_cm)
        self.ipd_estimator = IPDEstimator(self.config.ipd_offset_cm)

        self.calibration = CalibrationController(
            CalibrationStore(store if store is not None else InMemoryStore(), self.config.default_iris_cm),
            streams=(self.iris_stream, self.ipd_stream),
            config=self.config,
            clock=clock
        )

        self.use_fixed_distance = False

    @property
    def constants(self) -> CalibrationConstants:
        return self.calibration.constants

    def process_landmarks(self, landmarks, width: float, height: float) -> IPDResult:
        """
        Process one frame's landmarks.

        Args:
            landmarks: Normalized face landmarks, or None when no face was found
            width: Frame width in pixels
            height: Frame height in pixels

        Returns:
            IPDResult for the frame
        """
        if landmarks is None:
            return self._no_face_result()
        return self.process_observation(self.observer.observe(landmarks, width, height))

    def process_observation(self, observation: FrameObservation) -> IPDResult:
        """Fold one observation into the streams and estimate distance and IPD."""
        constants = self.constants

        iris_px = self.iris_stream.add(observation.iris_px)
        ipd_px = self.ipd_stream.add(observation.ipd_px)

        distance = self.distance_estimator.estimate(
            iris_px, constants.f_px, constants.iris_cm, self.use_fixed_distance
        )
        ipd_cm = self.ipd_estimator.estimate(ipd_px, distance.distance_cm, constants.f_px)

        warning = None
        if observation.gated:
            warning = WARN_OFF_AXIS
        elif self.iris_stream.last_rejected or self.ipd_stream.last_rejected:
            warning = WARN_OUTLIER

        return IPDResult(
            face_detected=True,
            iris_px=iris_px,
            ipd_px=ipd_px,
            distance_cm=distance.distance_cm,
            distance_mode=distance.mode,
            ipd_cm=ipd_cm,
            f_px=constants.f_px,
            iris_cm=constants.iris_cm,
            iris_personalized=constants.is_personalized,
            left_iris=observation.left_iris,
            right_iris=observation.right_iris,
            warning=warning
        )

    def observation_provider(self, landmark_provider: LandmarkProvider) -> Callable[[], Optional[FrameObservation]]:
        """Wrap a landmark-frame provider so it yields FrameObservations."""
        def next_observation() -> Optional[FrameObservation]:
            frame = landmark_provider()
            if frame is None:
                return None
            landmarks, width, height = frame
            if landmarks is None:
                return None
            return self.observer.observe(landmarks, width, height)
        return next_observation

    def calibrate(
        self,
        kind: CalibrationKind,
        landmark_provider: LandmarkProvider,
        **kwargs
    ) -> CalibrationResult:
        """
        Run a calibration session on frames from `landmark_provider`.

        Extra keyword arguments (clock, should_abort, on_progress) are
        passed to CalibrationController.run_session.
        """
        return self.calibration.run_session(
            kind, self.observation_provider(landmark_provider), **kwargs
        )

    def reset(self) -> CalibrationConstants:
        """Reset calibration to defaults and clear the streams."""
        return self.calibration.reset()

    def _no_face_result(self) -> IPDResult:
        constants = self.constants
        return IPDResult(
            face_detected=False,
            f_px=constants.f_px,
            iris_cm=constants.iris_cm,
            iris_personalized=constants.is_personalized,
            warning=WARN_NO_FACE
        )
