"""
Calibration Module - Focal Length and Personal Iris Size

Two sessions share one protocol and solve the pinhole model at the fixed
reference distance D0 (the user holds still at ~30 cm):

1. FOCAL: f_px    = median_iris_px * D0 / iris_cm
2. IRIS:  iris_cm = median_iris_px * D0 / f_px   (needs f_px first)

A session polls fresh observations until its time budget or sample cap
runs out, keeping only frames that pass the bilateral iris gate. With too
few samples it fails and nothing changes. On success the new constants
are persisted and the live smoothing streams are cleared, since their
history belongs to the old pixel-to-cm mapping.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence

import numpy as np

from .clock import MonotonicClock
from .config import IPDConfig, SessionBudget
from .measurement import FrameObservation
from .storage import CalibrationConstants, CalibrationStore
from .temporal_filter import RobustStream

logger = logging.getLogger(__name__)


class CalibrationKind(str, Enum):
    FOCAL = "focal"
    IRIS = "iris"


REASON_PRECONDITION = "precondition_failed"
REASON_INSUFFICIENT_SAMPLES = "insufficient_samples"
REASON_ABORTED = "aborted"

ObservationProvider = Callable[[], Optional[FrameObservation]]
ProgressCallback = Callable[["CalibrationKind", int, int], None]


@dataclass
class CalibrationResult:
    """Outcome of one calibration session."""
    success: bool
    kind: CalibrationKind
    constants: CalibrationConstants
    reason: Optional[str] = None
    message: str = ""
    samples: List[float] = field(default_factory=list)
    median_diameter_px: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "kind": self.kind.value,
            "reason": self.reason,
            "message": self.message,
            "sample_count": len(self.samples),
            "median_diameter_px": self.median_diameter_px,
            "calibration": self.constants.to_dict(),
        }


class CalibrationController:
    """
    Owns the calibration constants and runs calibration sessions.

    The constants object is replaced as a whole on every change; readers
    take `controller.constants` once per frame.
    """

    def __init__(
        self,
        store: CalibrationStore,
        streams: Sequence[RobustStream] = (),
        config: Optional[IPDConfig] = None,
        clock=None
    ):
        """
        Initialize the controller.

        Args:
            store: Persistence for the constants (loaded immediately)
            streams: Live smoothing streams to clear when constants change
            config: Budgets and reference distance
            clock: Default time source with now()/sleep() (wall clock if None)
        """
        self.config = config or IPDConfig()
        self.store = store
        self.streams = list(streams)
        self.clock = clock or MonotonicClock()
        self._constants = store.load()

    @property
    def constants(self) -> CalibrationConstants:
        return self._constants

    def budget_for(self, kind: CalibrationKind) -> SessionBudget:
        if kind == CalibrationKind.FOCAL:
            return self.config.focal_budget
        return self.config.iris_budget

    def calibrate_focal(self, next_observation: ObservationProvider, **kwargs) -> CalibrationResult:
        """Solve f_px from the iris size at the reference distance."""
        return self.run_session(CalibrationKind.FOCAL, next_observation, **kwargs)

    def calibrate_iris(self, next_observation: ObservationProvider, **kwargs) -> CalibrationResult:
        """Solve the personal iris diameter using the calibrated f_px."""
        return self.run_session(CalibrationKind.IRIS, next_observation, **kwargs)

    def run_session(
        self,
        kind: CalibrationKind,
        next_observation: ObservationProvider,
        clock=None,
        should_abort: Optional[Callable[[], bool]] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CalibrationResult:
        """
        Run one calibration session.

        Args:
            kind: FOCAL or IRIS
            next_observation: Returns the next frame's observation, or None
                when no face was found
            clock: Time source for this session (defaults to the controller's)
            should_abort: Polled once per iteration; True ends the session
                without changing anything
            on_progress: Called after each poll with (kind, samples, cap)

        Returns:
            CalibrationResult with the (possibly unchanged) constants
        """
        kind = CalibrationKind(kind)
        clock = clock or self.clock
        budget = self.budget_for(kind)
        start = self._constants

        if kind == CalibrationKind.IRIS and not start.has_focal:
            logger.warning("[Calibration] Iris calibration requested before f_px")
            return CalibrationResult(
                success=False,
                kind=kind,
                constants=start,
                reason=REASON_PRECONDITION,
                message="Calibrate f_px first."
            )

        logger.info(
            f"[Calibration] {kind.value} session: {budget.time_budget_s:.1f}s, "
            f"up to {budget.sample_cap} samples at {self.config.fixed_distance_cm:.1f} cm"
        )

        samples: List[float] = []
        deadline = clock.now() + budget.time_budget_s

        while clock.now() < deadline and len(samples) < budget.sample_cap:
            if should_abort is not None and should_abort():
                logger.warning(f"[Calibration] {kind.value} session aborted after {len(samples)} samples")
                return CalibrationResult(
                    success=False,
                    kind=kind,
                    constants=start,
                    reason=REASON_ABORTED,
                    message="Calibration aborted."
                )

            observation = next_observation()
            if observation is not None and observation.iris_px is not None:
                samples.append(observation.iris_px)

            clock.sleep(budget.poll_interval_s)
            if on_progress is not None:
                on_progress(kind, len(samples), budget.sample_cap)

        if len(samples) < budget.min_samples:
            logger.warning(
                f"[Calibration] {kind.value} failed: {len(samples)} valid samples "
                f"(need {budget.min_samples})"
            )
            return CalibrationResult(
                success=False,
                kind=kind,
                constants=start,
                reason=REASON_INSUFFICIENT_SAMPLES,
                message=(
                    f"Calibration failed. Try again with steady gaze at "
                    f"~{self.config.fixed_distance_cm:.0f} cm."
                ),
                samples=samples
            )

        median_px = float(np.median(samples))
        d0 = self.config.fixed_distance_cm

        if kind == CalibrationKind.FOCAL:
            updated = replace(start, f_px=median_px * d0 / start.iris_cm)
            logger.info(f"[Calibration] f_px = {median_px:.2f} x {d0} / {start.iris_cm:.3f} = {updated.f_px:.2f}")
        else:
            updated = replace(start, iris_cm=median_px * d0 / start.f_px)
            logger.info(f"[Calibration] iris_cm = {median_px:.2f} x {d0} / {start.f_px:.2f} = {updated.iris_cm:.3f}")

        self._apply(updated)

        return CalibrationResult(
            success=True,
            kind=kind,
            constants=updated,
            message=f"{kind.value} calibration complete ({len(samples)} samples).",
            samples=samples,
            median_diameter_px=median_px
        )

    def reset(self) -> CalibrationConstants:
        """Forget f_px, restore the default iris size and clear the streams."""
        self._constants = self.store.reset()
        self._clear_streams()
        logger.info("[Calibration] Reset to defaults")
        return self._constants

    def _apply(self, constants: CalibrationConstants) -> None:
        self.store.save(constants)
        self._constants = constants
        self._clear_streams()

    def _clear_streams(self) -> None:
        for stream in self.streams:
            stream.clear()
