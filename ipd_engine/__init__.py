"""
IPD (Interpupillary Distance) Measurement Core Engine

Estimates camera distance and interpupillary distance from per-frame
face landmarks using a calibrated pinhole camera model.
"""

from .core import IPDPipeline, IPDResult
from .calibration import CalibrationController, CalibrationKind, CalibrationResult
from .storage import CalibrationConstants, InMemoryStore, JsonFileStore

__version__ = "0.1.0"
__all__ = [
    "IPDPipeline",
    "IPDResult",
    "CalibrationController",
    "CalibrationKind",
    "CalibrationResult",
    "CalibrationConstants",
    "InMemoryStore",
    "JsonFileStore",
]
