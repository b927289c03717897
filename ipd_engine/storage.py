"""
Storage Module - Persisted Calibration Constants

The engine never talks to a concrete store directly: it is handed any
object with get/set/remove (a KeyValueStore). Two stores ship here, an
in-memory one and a JSON file.
"""

import json
import logging
import math
import os
import tempfile
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from .config import DEFAULT_IRIS_CM

logger = logging.getLogger(__name__)


FPX_KEY = "ipd_fpx"
IRIS_CM_KEY = "ipd_iris_cm"

# Iris sizes within this distance of the default count as not personalized
PERSONALIZED_TOLERANCE_CM = 1e-3


class KeyValueStore(Protocol):
    """String key-value capability: get returns None for unknown keys."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryStore:
    """Process-local store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """
    Store backed by a flat JSON object on disk.

    The whole file is rewritten on every change via a temp file and
    os.replace, so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str):
        self.path = path
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[Storage] Could not read {self.path}: {e}; starting empty")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"[Storage] {self.path} is not a JSON object; starting empty")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)
        self._write()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()


def parse_positive(value: Optional[str]) -> Optional[float]:
    """Parse a stored number; None unless it is a finite positive float."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


@dataclass(frozen=True)
class CalibrationConstants:
    """
    Calibration state of the pinhole model.

    f_px is None until focal calibration succeeds; iris_cm always holds a
    positive diameter (the population default until personalized).
    """
    f_px: Optional[float] = None
    iris_cm: float = DEFAULT_IRIS_CM
    default_iris_cm: float = DEFAULT_IRIS_CM

    def __post_init__(self):
        if self.f_px is not None and not self.f_px > 0:
            raise ValueError(f"f_px must be positive or None, got {self.f_px}")
        if not self.iris_cm > 0:
            raise ValueError(f"iris_cm must be positive, got {self.iris_cm}")

    @property
    def has_focal(self) -> bool:
        return self.f_px is not None

    @property
    def is_personalized(self) -> bool:
        return abs(self.iris_cm - self.default_iris_cm) > PERSONALIZED_TOLERANCE_CM

    def to_dict(self) -> dict:
        return {
            "f_px": self.f_px,
            "iris_cm": self.iris_cm,
            "default_iris_cm": self.default_iris_cm,
            "iris_personalized": self.is_personalized,
        }


class CalibrationStore:
    """Loads, saves and resets CalibrationConstants in a KeyValueStore."""

    def __init__(self, store: KeyValueStore, default_iris_cm: float = DEFAULT_IRIS_CM):
        self.store = store
        self.default_iris_cm = default_iris_cm

    def load(self) -> CalibrationConstants:
        f_px = parse_positive(self.store.get(FPX_KEY))
        iris_cm = parse_positive(self.store.get(IRIS_CM_KEY))
        if iris_cm is None:
            iris_cm = self.default_iris_cm
        constants = CalibrationConstants(
            f_px=f_px,
            iris_cm=iris_cm,
            default_iris_cm=self.default_iris_cm
        )
        logger.info(f"[Storage] Loaded calibration f_px={f_px} iris_cm={iris_cm:.3f}")
        return constants

    def save(self, constants: CalibrationConstants) -> None:
        if constants.f_px is None:
            self.store.remove(FPX_KEY)
        else:
            self.store.set(FPX_KEY, repr(constants.f_px))
        self.store.set(IRIS_CM_KEY, repr(constants.iris_cm))

    def reset(self) -> CalibrationConstants:
        constants = CalibrationConstants(
            f_px=None,
            iris_cm=self.default_iris_cm,
            default_iris_cm=self.default_iris_cm
        )
        self.save(constants)
        return constants
