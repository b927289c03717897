"""
IPD Measurement Service - Backend logic for live IPD estimation.
Wraps the pipeline with image decoding, landmark detection, persisted
calibration and a guard allowing a single calibration session at a time.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from ipd_engine.calibration import CalibrationKind
from ipd_engine.clock import ReplayClock
from ipd_engine.config import IPDConfig
from ipd_engine.core import IPDPipeline, LandmarkFrame
from ipd_engine.storage import JsonFileStore, KeyValueStore
from ipd_engine.utils import FpsMeter

logger = logging.getLogger(__name__)


class CalibrationBusyError(RuntimeError):
    """Raised when a calibration session is requested while one is running."""


class IPDService:
    """IPD measurement service over the live pipeline."""

    def __init__(
        self,
        config: Optional[IPDConfig] = None,
        store: Optional[KeyValueStore] = None,
        landmark_source=None
    ):
        """
        Initialize the service.

        Args:
            config: Pipeline configuration (from environment if None)
            store: Calibration store (JSON file at config.store_path if None)
            landmark_source: Object with detect(frame) -> landmarks; a
                MediaPipe FaceLandmarkSource is created on first use if None
        """
        logger.info("[IPDService] Initializing IPD measurement engine...")
        self.config = config or IPDConfig.from_env()
        self.store = store if store is not None else JsonFileStore(self.config.store_path)
        self.pipeline = IPDPipeline(store=self.store, config=self.config)
        self._landmark_source = landmark_source
        self._calibration_lock = threading.Lock()
        self.fps = FpsMeter()

    @property
    def landmark_source(self):
        if self._landmark_source is None:
            from ipd_engine.landmarks import FaceLandmarkSource
            self._landmark_source = FaceLandmarkSource(self.config.model_path)
        return self._landmark_source

    def observe_image(self, image: np.ndarray) -> Dict[str, Any]:
        """Detect landmarks in a BGR image and process them as the next frame."""
        if image is None or image.ndim != 3:
            raise ValueError("Expected a BGR image")
        h, w = image.shape[:2]
        landmarks = self.landmark_source.detect(image)
        return self.observe_landmarks(landmarks, w, h)

    def observe_landmarks(self, landmarks, width: float, height: float) -> Dict[str, Any]:
        """Process one frame of normalized landmarks (None for no face)."""
        self.fps.tick()
        result = self.pipeline.process_landmarks(landmarks, width, height)
        payload = result.to_dict()
        payload["fps"] = self.fps.fps
        payload["calibrating"] = self._calibration_lock.locked()
        return payload

    def calibrate(self, kind: str, frames: Sequence[Optional[LandmarkFrame]]) -> Dict[str, Any]:
        """
        Run a calibration session over a batch of captured frames.

        Frames are replayed one per poll on a virtual clock, so the
        session's time budget limits how many of them are considered.

        Args:
            kind: "focal" or "iris"
            frames: (landmarks, width, height) per captured frame; None or
                None landmarks for frames without a face

        Returns:
            CalibrationResult as a dictionary
        """
        kind = CalibrationKind(kind)
        if not self._calibration_lock.acquire(blocking=False):
            raise CalibrationBusyError("A calibration session is already running")
        try:
            frame_iter = iter(frames)

            def next_frame() -> Optional[LandmarkFrame]:
                return next(frame_iter, None)

            result = self.pipeline.calibrate(kind, next_frame, clock=ReplayClock())
        finally:
            self._calibration_lock.release()

        if result.success:
            logger.info(f"[IPDService] {result.message}")
        else:
            logger.warning(f"[IPDService] Calibration {kind.value} failed: {result.reason}")
        return result.to_dict()

    def reset(self) -> Dict[str, Any]:
        """Reset calibration to defaults."""
        constants = self.pipeline.reset()
        return {"success": True, "calibration": constants.to_dict()}

    def set_fixed_distance(self, enabled: bool) -> Dict[str, Any]:
        """Switch between the fixed reference distance and estimated distance."""
        self.pipeline.use_fixed_distance = bool(enabled)
        return self.status()

    def status(self) -> Dict[str, Any]:
        return {
            "calibration": self.pipeline.constants.to_dict(),
            "use_fixed_distance": self.pipeline.use_fixed_distance,
            "fixed_distance_cm": self.config.fixed_distance_cm,
            "calibrating": self._calibration_lock.locked(),
        }


def frames_from_payload(frames: Iterable[dict]) -> List[Optional[LandmarkFrame]]:
    """Convert request frame dicts ({landmarks, width, height}) to landmark frames."""
    converted: List[Optional[LandmarkFrame]] = []
    for frame in frames:
        landmarks = frame.get("landmarks")
        if not landmarks:
            converted.append(None)
            continue
        converted.append((np.asarray(landmarks, dtype=np.float64), frame["width"], frame["height"]))
    return converted


# Singleton
_ipd_service = None


def get_ipd_service() -> IPDService:
    global _ipd_service
    if _ipd_service is None:
        _ipd_service = IPDService()
    return _ipd_service
