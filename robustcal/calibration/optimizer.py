"""Magnetometer calibration refinement using Levenberg-Marquardt."""

import logging
from typing import Sequence

import numpy as np
from scipy.optimize import least_squares

from robustcal.calibration.magnetometer import (
    PreliminaryResult,
    design_matrix,
    model_to_params,
    params_to_model,
)
from robustcal.calibration.measurement import MagnetometerMeasurement
from robustcal.exceptions import RefinementError

logger = logging.getLogger(__name__)


class MagnetometerOptimizer:
    """Refine hard-iron and soft-iron estimates over a set of measurements."""

    def __init__(self, max_iters: int = 100, keep_covariance: bool = True):
        self.max_iters = max_iters
        self.keep_covariance = keep_covariance

    def optimize(self, measurements: Sequence[MagnetometerMeasurement],
                 hard_iron: np.ndarray, mm: np.ndarray,
                 common_axis_used: bool = False) -> PreliminaryResult:
        """
        Optimize calibration parameters.

        Residuals of measurements with a standard deviation are weighted by
        its inverse. The covariance is inv(J^T J), scaled by the reduced
        chi-square unless every measurement carries its standard deviation.

        Args:
            measurements: Measurements to fit, usually the inliers of a robust run
            hard_iron: Initial hard-iron [T]
            mm: Initial soft-iron matrix
            common_axis_used: Assume magnetometer and body z-axes match

        Returns:
            Refined PreliminaryResult with mse, chi-square and covariance

        Raises:
            RefinementError: If the system is underdetermined or the solver fails
        """
        measurements = list(measurements)
        if not measurements:
            raise RefinementError("No measurements to refine from")

        expected = np.array([m.expected for m in measurements])
        measured = np.array([m.measured for m in measurements])
        a = design_matrix(expected, common_axis_used)
        y = (measured - expected).reshape(-1)

        n_residuals, n_params = a.shape
        if n_residuals < n_params:
            raise RefinementError(
                f"{len(measurements)} measurements cannot constrain {n_params} parameters")

        weights = self._weights(measurements)
        jac = a * weights[:, None]
        target = y * weights

        if np.linalg.matrix_rank(jac) < n_params:
            raise RefinementError("Measurements do not constrain every parameter")

        def residuals(params):
            return jac @ params - target

        x0 = model_to_params(hard_iron, mm, common_axis_used)
        try:
            result = least_squares(residuals, x0, jac=lambda params: jac, method='lm',
                                   x_scale='jac', max_nfev=self.max_iters)
        except (ValueError, np.linalg.LinAlgError) as e:
            raise RefinementError(f"Least squares solver failed: {e}") from e

        if not result.success:
            raise RefinementError(f"Least squares did not converge: {result.message}")

        refined_hard_iron, refined_mm = params_to_model(result.x, common_axis_used)

        errors = (a @ result.x - y).reshape(-1, 3)
        mse = float(np.mean(np.sum(errors ** 2, axis=1)))
        chi_sq = float(np.sum(result.fun ** 2))

        covariance = None
        if self.keep_covariance:
            covariance = self._covariance(jac, chi_sq, measurements)

        logger.debug("Refined calibration over %d measurements, mse=%g, chi_sq=%g",
                     len(measurements), mse, chi_sq)

        return PreliminaryResult(hard_iron=refined_hard_iron, mm=refined_mm,
                                 covariance=covariance, mse=mse, chi_sq=chi_sq)

    def _weights(self, measurements: Sequence[MagnetometerMeasurement]) -> np.ndarray:
        """Inverse standard deviation per residual component."""
        weights = np.ones((len(measurements), 3))
        for i, m in enumerate(measurements):
            if m.std is not None:
                weights[i] = 1.0 / m.std
        return weights.reshape(-1)

    def _covariance(self, jac: np.ndarray, chi_sq: float,
                    measurements: Sequence[MagnetometerMeasurement]) -> np.ndarray:
        try:
            covariance = np.linalg.inv(jac.T @ jac)
        except np.linalg.LinAlgError as e:
            raise RefinementError(f"Singular information matrix: {e}") from e

        dof = jac.shape[0] - jac.shape[1]
        absolute_sigma = all(m.std is not None for m in measurements)
        if not absolute_sigma and dof > 0:
            covariance *= chi_sq / dof
        return covariance
