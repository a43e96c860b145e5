"""
Configuration management for robustcal
"""

import copy
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml

from robustcal.exceptions import NotReadyError

DEFAULT_CONFIG = {
    "estimation": {
        "method": "lmeds",
        "confidence": 0.99,
        "max_iterations": 5000,
        "progress_delta": 0.05,
        "threshold": 500e-9,
        "stop_threshold": 1e-9,
        "inlier_factor": 1.5,
        "keep_residuals": False,
        "prosac_growth_iterations": None
    },
    "calibration": {
        "common_axis_used": False,
        "refine_result": True,
        "keep_covariance": True,
        "refine_preliminary_solutions": False,
        "preliminary_subset_size": None,
        "use_linear_calibrator": True,
        "initial_hard_iron": None,
        "initial_mm": None
    }
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_config(override: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return DEFAULT_CONFIG with the sections of `override` merged in."""
    return _merge(DEFAULT_CONFIG, override or {})


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load a YAML configuration file merged over DEFAULT_CONFIG."""
    if path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(path, 'r') as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration in {path} must be a mapping")

    return merge_config(loaded)


_FLOAT_FIELDS = ('confidence', 'progress_delta', 'threshold', 'stop_threshold', 'inlier_factor')
_INT_FIELDS = ('max_iterations', 'prosac_growth_iterations')


def _to_number(name: str, value: Any, kind: type):
    if value is None:
        return None
    if isinstance(value, bool):
        raise NotReadyError(f"{name} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise NotReadyError(f"{name} must be numeric, got {value!r}") from e
    if kind is int:
        if not number.is_integer():
            raise NotReadyError(f"{name} must be an integer, got {value!r}")
        return int(number)
    return number


@dataclass(frozen=True)
class RunConfig:
    """
    Parameters of a single robust estimation run.

    Attributes:
        confidence: Probability of sampling at least one outlier-free subset
        max_iterations: Hard cap on the number of iterations
        progress_delta: Minimum progress change between notifications
        threshold: Inlier threshold for RANSAC, MSAC and PROSAC [T]
        stop_threshold: Median residual at which LMedS and PROMedS stop early.
                        Also a lower bound of their derived threshold [T]
        inlier_factor: Scale of the robust threshold derived by median variants
        keep_residuals: Whether residuals are kept in InliersData
        prosac_growth_iterations: Iterations after which the PROSAC pool spans
                                  all samples. Defaults to max_iterations
    """

    confidence: float = 0.99
    max_iterations: int = 5000
    progress_delta: float = 0.05
    threshold: Optional[float] = 500e-9
    stop_threshold: Optional[float] = 1e-9
    inlier_factor: float = 1.5
    keep_residuals: bool = False
    prosac_growth_iterations: Optional[int] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "RunConfig":
        """
        Build from a dict such as DEFAULT_CONFIG["estimation"].

        Unknown keys are ignored. Numeric values given as strings, as PyYAML
        returns for exponent-only notation like 500e-9, are converted.

        Raises:
            NotReadyError: If a numeric field holds a non-numeric value
        """
        values = {}
        for f in fields(cls):
            if f.name not in config:
                continue
            value = config[f.name]
            if f.name in _FLOAT_FIELDS:
                value = _to_number(f.name, value, float)
            elif f.name in _INT_FIELDS:
                value = _to_number(f.name, value, int)
            values[f.name] = value
        return cls(**values)

    def validate(self, requires_threshold: bool = True):
        """Raise NotReadyError if any parameter is out of range."""
        if not 0.0 < self.confidence < 1.0:
            raise NotReadyError(f"Confidence must be in (0, 1), got {self.confidence}")
        if self.max_iterations < 1:
            raise NotReadyError(f"Max iterations must be positive, got {self.max_iterations}")
        if not 0.0 < self.progress_delta <= 1.0:
            raise NotReadyError(f"Progress delta must be in (0, 1], got {self.progress_delta}")
        if self.inlier_factor <= 0.0:
            raise NotReadyError(f"Inlier factor must be positive, got {self.inlier_factor}")
        if self.prosac_growth_iterations is not None and self.prosac_growth_iterations < 1:
            raise NotReadyError("PROSAC growth iterations must be positive")

        if requires_threshold:
            if self.threshold is None or self.threshold <= 0.0:
                raise NotReadyError(f"Threshold must be positive, got {self.threshold}")
        elif self.stop_threshold is not None and self.stop_threshold <= 0.0:
            raise NotReadyError(f"Stop threshold must be positive, got {self.stop_threshold}")
