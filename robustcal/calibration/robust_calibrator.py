"""
Robust Magnetometer Calibrator
Main entry point for hard-iron and soft-iron estimation
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from robustcal.calibration.magnetometer import (
    MagnetometerErrorModel,
    PreliminaryResult,
    fix_measurement,
)
from robustcal.calibration.measurement import MagnetometerMeasurement
from robustcal.calibration.optimizer import MagnetometerOptimizer
from robustcal.config import RunConfig, merge_config
from robustcal.estimation.estimator import EstimatorListener, InliersData
from robustcal.estimation.factory import RobustEstimatorMethod, create_estimator
from robustcal.exceptions import LockedError, NotReadyError
from robustcal.utils.metrics import PerformanceMetrics, ResidualMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationResult:
    """
    Outcome of a robust calibration.

    Attributes:
        hard_iron: Estimated hard-iron bias [T] (3,)
        mm: Estimated soft-iron matrix (3, 3)
        covariance: Parameter covariance, None if not kept or not refined
        mse: Mean squared error over inliers [T^2], None if not refined
        chi_sq: Chi-square of the refinement, None if not refined
        inliers_data: Inlier/outlier partition of the robust estimation
        iterations: Iterations used by the robust estimator
        residual_stats: Summary of inlier residuals of the final model
        elapsed_ms: Duration of the calibration
        refined: Whether the result was refined over the inliers
    """

    hard_iron: np.ndarray
    mm: np.ndarray
    covariance: Optional[np.ndarray]
    mse: Optional[float]
    chi_sq: Optional[float]
    inliers_data: InliersData
    iterations: int
    residual_stats: Dict[str, float]
    elapsed_ms: float
    refined: bool

    @property
    def hard_iron_variance(self) -> Optional[np.ndarray]:
        """Variance of bx, by and bz [T^2], None without covariance."""
        if self.covariance is None:
            return None
        return np.diag(self.covariance)[:3].copy()

    @property
    def hard_iron_std(self) -> Optional[np.ndarray]:
        """Standard deviation of bx, by and bz [T], None without covariance."""
        variance = self.hard_iron_variance
        return None if variance is None else np.sqrt(variance)

    @property
    def hard_iron_std_norm(self) -> Optional[float]:
        """Norm of the hard-iron standard deviations [T]."""
        std = self.hard_iron_std
        return None if std is None else float(np.linalg.norm(std))

    def fix(self, measured: np.ndarray) -> np.ndarray:
        """Correct a raw reading with the estimated errors."""
        return fix_measurement(measured, self.hard_iron, self.mm)


class RobustMagnetometerCalibrator:
    """Estimate magnetometer errors from outlier-contaminated measurements."""

    def __init__(self, measurements: Optional[Sequence[MagnetometerMeasurement]] = None,
                 method: Union[str, RobustEstimatorMethod, None] = None,
                 quality_scores: Optional[Sequence[float]] = None,
                 listener: Optional[EstimatorListener] = None,
                 config: Dict[str, Any] = None,
                 random_state=None):
        """
        Initialize calibrator

        Args:
            measurements: Measurements with known true flux density
            method: Robust method, defaults to config["estimation"]["method"]
            quality_scores: Per measurement quality, required by PROSAC and PROMedS
            listener: Callbacks receiving this calibrator as source
            config: Configuration dictionary merged over DEFAULT_CONFIG (optional)
            random_state: Seed or numpy Generator used for sampling

        Raises:
            NotReadyError: If a numeric estimation setting is not a number
        """
        self.config = merge_config(config)
        estimation = self.config['estimation']
        calibration = self.config['calibration']

        self.method = RobustEstimatorMethod.parse(method or estimation['method'])
        self.run_config = RunConfig.from_dict(estimation)
        self.common_axis_used = calibration['common_axis_used']
        self.refine_result = calibration['refine_result']
        self.keep_covariance = calibration['keep_covariance']
        self.refine_preliminary_solutions = calibration['refine_preliminary_solutions']
        self.preliminary_subset_size = calibration['preliminary_subset_size']
        self.use_linear_calibrator = calibration['use_linear_calibrator']
        self.initial_hard_iron = calibration['initial_hard_iron']
        self.initial_mm = calibration['initial_mm']

        self.listener = listener or EstimatorListener()
        self.random_state = random_state
        self.optimizer = MagnetometerOptimizer(keep_covariance=self.keep_covariance)
        self.metrics = PerformanceMetrics()

        self._lock = threading.Lock()
        self._measurements = list(measurements or [])
        self._quality_scores = None if quality_scores is None else np.asarray(quality_scores, dtype=float)

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def measurements(self):
        return self._measurements

    @measurements.setter
    def measurements(self, measurements: Sequence[MagnetometerMeasurement]):
        if self.running:
            raise LockedError("Cannot change measurements while calibrating")
        self._measurements = list(measurements)

    @property
    def quality_scores(self) -> Optional[np.ndarray]:
        return self._quality_scores

    @quality_scores.setter
    def quality_scores(self, quality_scores: Optional[Sequence[float]]):
        if self.running:
            raise LockedError("Cannot change quality scores while calibrating")
        self._quality_scores = None if quality_scores is None else np.asarray(quality_scores, dtype=float)

    @property
    def minimum_measurements(self) -> int:
        return self._model().subset_size()

    def _model(self) -> MagnetometerErrorModel:
        refine_each = self.refine_preliminary_solutions or not self.use_linear_calibrator
        return MagnetometerErrorModel(
            self._measurements, self.common_axis_used,
            optimizer=self.optimizer if refine_each else None,
            preliminary_subset_size=self.preliminary_subset_size,
            use_linear_calibrator=self.use_linear_calibrator,
            initial_hard_iron=self.initial_hard_iron,
            initial_mm=self.initial_mm,
        )

    def _estimator(self, model: MagnetometerErrorModel):
        inner_listener = EstimatorListener(
            on_iteration=lambda estimator, iteration: self.listener.on_iteration(self, iteration),
            on_progress=lambda estimator, progress: self.listener.on_progress(self, progress),
        )
        return create_estimator(self.method, model, self._quality_scores, inner_listener,
                                self.run_config, self.random_state)

    def is_ready(self) -> bool:
        """Check measurements and, for PROSAC and PROMedS, quality scores."""
        return self._estimator(self._model()).is_ready()

    def calibrate(self, cancel_event: Optional[threading.Event] = None) -> CalibrationResult:
        """
        Run robust estimation followed by refinement over its inliers.

        Args:
            cancel_event: Event checked at each iteration to abort the run

        Returns:
            CalibrationResult

        Raises:
            LockedError: If a calibration is already running
            NotReadyError: If measurements, quality scores or configuration are invalid
            EstimationError: If no consensus was found
            RefinementError: If a consensus was found but could not be refined
        """
        if not self._lock.acquire(blocking=False):
            raise LockedError("Calibrator is already running")

        try:
            model = self._model()
            estimator = self._estimator(model)
            if not estimator.is_ready():
                raise NotReadyError(
                    f"{self.method.value} calibration is not ready with "
                    f"{len(self._measurements)} measurements")
            self.run_config.validate(requires_threshold=estimator.scoring.uses_threshold)

            self.metrics.start_timer('calibrate')
            self.listener.on_start(self)

            preliminary, inliers_data = estimator.estimate(cancel_event=cancel_event)
            final = self._attempt_refine(preliminary, inliers_data)

            residuals = np.array(
                [model.compute_residual(final, i) for i in range(model.total_samples())])
            elapsed = self.metrics.stop_timer('calibrate')

            result = CalibrationResult(
                hard_iron=final.hard_iron,
                mm=final.mm,
                covariance=final.covariance,
                mse=final.mse,
                chi_sq=final.chi_sq,
                inliers_data=inliers_data,
                iterations=estimator.iterations,
                residual_stats=ResidualMetrics.summarize(residuals, inliers_data.inliers),
                elapsed_ms=elapsed,
                refined=self.refine_result,
            )

            logger.info("%s calibration: %d/%d inliers after %d iterations in %.1f ms",
                        self.method.value, inliers_data.num_inliers, model.total_samples(),
                        estimator.iterations, elapsed)
            self.listener.on_end(self)
            return result
        finally:
            self.metrics.start_times.pop('calibrate', None)
            self._lock.release()

    def _attempt_refine(self, preliminary: PreliminaryResult,
                        inliers_data: InliersData) -> PreliminaryResult:
        if not self.refine_result:
            return preliminary

        inliers = [m for m, is_inlier in zip(self._measurements, inliers_data.inliers)
                   if is_inlier]
        return self.optimizer.optimize(inliers, preliminary.hard_iron, preliminary.mm,
                                       self.common_axis_used)
