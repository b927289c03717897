"""
Landmark Source - MediaPipe FaceLandmarker (Tasks API) in VIDEO mode

Thin wrapper turning BGR frames into the normalized 478-point face mesh
consumed by IrisObserver.
"""

import logging
import os
import time
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

logger = logging.getLogger(__name__)


FACE_LANDMARKER_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/1/face_landmarker.task"
)
FACE_LANDMARKER_MODEL_NAME = "face_landmarker.task"


def default_model_path() -> str:
    """Model file expected next to the service modules."""
    return os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        FACE_LANDMARKER_MODEL_NAME
    )


class FaceLandmarkSource:
    """
    Face landmark detection for a video stream.

    Timestamps passed to MediaPipe must increase strictly; when the caller
    does not supply one, milliseconds since construction are used.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        min_detection_confidence: float = 0.5,
        min_presence_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5
    ):
        """
        Initialize the landmarker.

        Args:
            model_path: Path to face_landmarker.task (defaults next to the package)
            min_detection_confidence: Minimum face detection confidence
            min_presence_confidence: Minimum face presence confidence
            min_tracking_confidence: Minimum tracking confidence
        """
        model_path = model_path or default_model_path()
        if not os.path.exists(model_path):
            raise FileNotFoundError(
                f"Face landmarker model not found at {model_path}. "
                f"Download from: {FACE_LANDMARKER_MODEL_URL}"
            )

        base_options = mp.tasks.BaseOptions(model_asset_path=model_path)
        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=mp.tasks.vision.RunningMode.VIDEO,
            num_faces=1,
            min_face_detection_confidence=min_detection_confidence,
            min_face_presence_confidence=min_presence_confidence,
            min_tracking_confidence=min_tracking_confidence,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False
        )
        self.face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        self._t0 = time.monotonic()
        self._last_timestamp_ms = -1
        logger.info(f"[Landmarks] FaceLandmarker loaded from {model_path}")

    def detect(self, frame: np.ndarray, timestamp_ms: Optional[int] = None):
        """
        Detect the first face in a BGR frame.

        Args:
            frame: BGR image
            timestamp_ms: Frame timestamp in ms (monotonic)

        Returns:
            List of normalized landmarks (with .x, .y), or None if no face
        """
        if timestamp_ms is None:
            timestamp_ms = int((time.monotonic() - self._t0) * 1000)
        timestamp_ms = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        rgb_image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_image)
        results = self.face_landmarker.detect_for_video(mp_image, timestamp_ms)

        if not results.face_landmarks:
            return None
        return results.face_landmarks[0]

    def close(self):
        """Release resources."""
        self.face_landmarker.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
