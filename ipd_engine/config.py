"""
Configuration - Measurement Constants and Environment Overrides

Holds every tunable constant of the IPD pipeline. Deployments may
override them through environment variables (or a .env file next to
the service).
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# Pinhole model reference distance (cm) used for calibration and fixed mode
FIXED_DISTANCE_CM = 30.0

# Average adult iris diameter (cm), used until personally calibrated
DEFAULT_IRIS_CM = 1.17

# Constant added to the computed IPD before display (cm)
IPD_OFFSET_CM = 0.6

# Max/min iris diameter ratio before a frame is treated as off-axis gaze
BILATERAL_GATE_RATIO = 1.15

# RobustStream defaults
STREAM_WINDOW = 21
STREAM_REJECT_K = 3.5

# Persisted calibration (JSON key-value file)
DEFAULT_STORE_PATH = "ipd_calibration.json"


@dataclass(frozen=True)
class SessionBudget:
    """Time and sample limits of one calibration session."""
    time_budget_s: float
    sample_cap: int = 20
    min_samples: int = 10
    poll_interval_s: float = 0.030


FOCAL_BUDGET = SessionBudget(time_budget_s=3.0)
IRIS_BUDGET = SessionBudget(time_budget_s=2.0)


@dataclass
class IPDConfig:
    """Runtime configuration for the pipeline, calibration and service."""
    fixed_distance_cm: float = FIXED_DISTANCE_CM
    default_iris_cm: float = DEFAULT_IRIS_CM
    ipd_offset_cm: float = IPD_OFFSET_CM
    gate_ratio: float = BILATERAL_GATE_RATIO
    stream_window: int = STREAM_WINDOW
    stream_reject_k: float = STREAM_REJECT_K
    focal_budget: SessionBudget = field(default_factory=lambda: FOCAL_BUDGET)
    iris_budget: SessionBudget = field(default_factory=lambda: IRIS_BUDGET)
    store_path: str = DEFAULT_STORE_PATH
    model_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "IPDConfig":
        """
        Build a config from IPD_* environment variables.

        Unset variables keep their defaults; unparseable ones are logged
        and ignored.
        """
        load_dotenv()

        config = cls()
        config.fixed_distance_cm = _env_float("IPD_FIXED_DISTANCE_CM", config.fixed_distance_cm)
        config.ipd_offset_cm = _env_float("IPD_OFFSET_CM", config.ipd_offset_cm)
        config.gate_ratio = _env_float("IPD_GATE_RATIO", config.gate_ratio)
        config.stream_window = _env_window("IPD_WINDOW", config.stream_window)
        config.stream_reject_k = _env_float("IPD_REJECT_K", config.stream_reject_k)
        config.store_path = os.getenv("IPD_STORE_PATH", config.store_path)
        config.model_path = os.getenv("IPD_MODEL_PATH", config.model_path)
        return config


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Config] Ignoring {name}={raw!r}: not a number")
        return default


def _env_window(name: str, default: int) -> int:
    value = _env_float(name, default)
    if not math.isfinite(value) or value < 1:
        logger.warning(f"[Config] Ignoring {name}={value}: window must be at least 1")
        return default
    return int(value)
