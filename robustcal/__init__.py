"""
Robust magnetometer calibration.

Estimates hard-iron bias and soft-iron matrix from outlier-contaminated
measurements using RANSAC, LMedS, MSAC, PROSAC or PROMedS.
"""

from .calibration.measurement import MagnetometerMeasurement
from .calibration.robust_calibrator import CalibrationResult, RobustMagnetometerCalibrator
from .config import DEFAULT_CONFIG, RunConfig, load_config
from .estimation.estimator import EstimatorListener, InliersData, RobustEstimator
from .estimation.factory import RobustEstimatorMethod, create_estimator
from .exceptions import (
    CalibrationError,
    EstimationCancelledError,
    EstimationError,
    LockedError,
    NotReadyError,
    RefinementError,
)

__all__ = [
    'MagnetometerMeasurement',
    'CalibrationResult',
    'RobustMagnetometerCalibrator',
    'DEFAULT_CONFIG',
    'RunConfig',
    'load_config',
    'EstimatorListener',
    'InliersData',
    'RobustEstimator',
    'RobustEstimatorMethod',
    'create_estimator',
    'CalibrationError',
    'EstimationCancelledError',
    'EstimationError',
    'LockedError',
    'NotReadyError',
    'RefinementError',
]
__version__ = '1.0.0'
