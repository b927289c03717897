#!/usr/bin/env python3
"""
IPD Measurement Live Demo

Runs the IPD pipeline on a webcam feed with an on-screen HUD.

Usage:
    python demo.py [options]

Keys:
    f   calibrate f_px (hold still at ~30 cm)
    i   calibrate personal iris size (after f_px)
    r   reset calibration
    d   toggle fixed 30 cm distance
    q   quit

Examples:
    python demo.py
    python demo.py --camera 1 --width 1920 --height 1080 --mirror
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

import cv2
import numpy as np

from ipd_engine.calibration import CalibrationKind, CalibrationResult
from ipd_engine.clock import MonotonicClock
from ipd_engine.config import IPDConfig
from ipd_engine.core import IPDPipeline
from ipd_engine.landmarks import FaceLandmarkSource
from ipd_engine.storage import JsonFileStore
from ipd_engine.utils import FpsMeter, draw_overlay, format_hud_lines

WINDOW_NAME = "IPD Measurement"

logger = logging.getLogger("demo")


def print_header(title: str) -> None:
    """Print formatted header."""
    line = "=" * 70
    print(f"\n{line}")
    print(f"  {title}")
    print(line)


class LiveSession:
    """Webcam capture, landmark detection and display around an IPDPipeline."""

    def __init__(
        self,
        capture: cv2.VideoCapture,
        source: FaceLandmarkSource,
        pipeline: IPDPipeline,
        mirror: bool = False
    ):
        self.capture = capture
        self.source = source
        self.pipeline = pipeline
        self.mirror = mirror
        self.fps = FpsMeter()
        self.last_frame: Optional[np.ndarray] = None
        self.status = 'Camera ready. Press "f" to calibrate f_px (hold ~30 cm).'

    def read(self) -> Optional[np.ndarray]:
        ok, frame = self.capture.read()
        if not ok:
            return None
        self.last_frame = frame
        return frame

    def show(self, frame: np.ndarray, lines, result=None) -> None:
        annotated = draw_overlay(
            frame,
            list(lines) + ([self.status] if self.status else []),
            iris_left=result.left_iris if result else None,
            iris_right=result.right_iris if result else None
        )
        if self.mirror:
            annotated = cv2.flip(annotated, 1)
        cv2.imshow(WINDOW_NAME, annotated)

    def window_closed(self) -> bool:
        return cv2.getWindowProperty(WINDOW_NAME, cv2.WND_PROP_VISIBLE) < 1

    def step(self) -> bool:
        """Process one frame; False when the capture ended."""
        frame = self.read()
        if frame is None:
            return False
        self.fps.tick()
        h, w = frame.shape[:2]
        result = self.pipeline.process_landmarks(self.source.detect(frame), w, h)
        self.show(frame, format_hud_lines(result, (w, h), self.fps.fps), result)
        return True

    def calibrate(self, kind: CalibrationKind) -> CalibrationResult:
        """Run a calibration session on live frames."""
        d0 = self.pipeline.config.fixed_distance_cm
        self.status = ""

        def next_frame():
            frame = self.read()
            if frame is None:
                return None
            h, w = frame.shape[:2]
            return self.source.detect(frame), w, h

        def on_progress(kind: CalibrationKind, count: int, cap: int) -> None:
            if self.last_frame is None:
                return
            if kind == CalibrationKind.FOCAL:
                text = f"Auto-calibrating f_px at {d0:.1f} cm... {count}/{cap}"
            else:
                text = f"Calibrating personal iris size at fixed distance... {count}"
            self.show(self.last_frame, [text])
            cv2.waitKey(1)

        result = self.pipeline.calibrate(
            kind,
            next_frame,
            clock=MonotonicClock(),
            should_abort=self.window_closed,
            on_progress=on_progress
        )

        if result.success:
            self.status = result.message
        elif kind == CalibrationKind.IRIS and result.reason == "insufficient_samples":
            self.status = "Iris calibration failed. Not enough good frames."
        else:
            self.status = result.message
        return result


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Live IPD measurement from a webcam",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--camera", type=int, default=0, help="Camera index")
    parser.add_argument("--width", type=int, default=1280, help="Requested frame width")
    parser.add_argument("--height", type=int, default=720, help="Requested frame height")
    parser.add_argument("--mirror", action="store_true", help="Mirror the display")
    parser.add_argument("--fixed-distance", action="store_true",
                        help="Start with the fixed 30 cm distance")
    parser.add_argument("--model", default=None, help="Path to face_landmarker.task")
    parser.add_argument("--store", default=None, help="Calibration JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    config = IPDConfig.from_env()
    if args.model:
        config.model_path = args.model
    if args.store:
        config.store_path = args.store

    pipeline = IPDPipeline(store=JsonFileStore(config.store_path), config=config)
    pipeline.use_fixed_distance = args.fixed_distance

    print_header("IPD MEASUREMENT DEMO")
    print(f"  Camera: {args.camera} ({args.width}x{args.height} requested)")
    print(f"  Calibration file: {config.store_path}")
    print("  Keys: f=calibrate f_px  i=calibrate iris  r=reset  d=fixed distance  q=quit")

    capture = cv2.VideoCapture(args.camera)
    if not capture.isOpened():
        print(f"Error: Could not open camera {args.camera}")
        sys.exit(1)
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, args.width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, args.height)
    capture.set(cv2.CAP_PROP_FPS, 30)

    try:
        with FaceLandmarkSource(config.model_path) as source:
            session = LiveSession(capture, source, pipeline, mirror=args.mirror)
            cv2.namedWindow(WINDOW_NAME)

            while session.step():
                key = cv2.waitKey(1) & 0xFF
                if key == ord('q') or session.window_closed():
                    break
                elif key == ord('f'):
                    session.calibrate(CalibrationKind.FOCAL)
                elif key == ord('i'):
                    session.calibrate(CalibrationKind.IRIS)
                elif key == ord('r'):
                    pipeline.reset()
                    session.status = "Reset done. Recalibrate f_px."
                elif key == ord('d'):
                    pipeline.use_fixed_distance = not pipeline.use_fixed_distance
    finally:
        capture.release()
        cv2.destroyAllWindows()

    print("\n✓ Done!")


if __name__ == "__main__":
    main()
