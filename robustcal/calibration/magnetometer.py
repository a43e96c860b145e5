"""
Magnetometer hard-iron and soft-iron error model.

The magnetometer model is:
    m_meas = b + (I + Mm) @ m_true

where:
    b: hard-iron bias [T] (3,)
    Mm: soft-iron matrix holding scale factors and cross coupling errors
        [[sx,  mxy, mxz],
         [myx, sy,  myz],
         [mzx, mzy, sz ]]

The model is linear in its parameters:
    m_meas - m_true = A(m_true) @ theta

with theta = [bx, by, bz, sx, sy, sz, mxy, mxz, myx, myz, mzx, mzy].
When the magnetometer z-axis is assumed to match the body z-axis, myx, mzx
and mzy are zero and Mm is upper triangular.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from robustcal.calibration.measurement import MagnetometerMeasurement
from robustcal.exceptions import RefinementError

# Each measurement provides one equation per axis
COMPONENTS = 3

GENERAL_PARAMS = 12

# Each row block keeps 4 unknowns even with a common z-axis (bx, sx, mxy, mxz)
MINIMUM_MEASUREMENTS = 4

# Columns of theta kept when a common z-axis is assumed (drops myx, mzx, mzy)
COMMON_AXIS_COLUMNS = [0, 1, 2, 3, 4, 5, 6, 7, 9]


@dataclass
class PreliminaryResult:
    """Candidate calibration built from a subset of measurements."""

    hard_iron: np.ndarray
    mm: np.ndarray
    covariance: Optional[np.ndarray] = None
    mse: Optional[float] = None
    chi_sq: Optional[float] = None


def design_matrix(expected: np.ndarray, common_axis_used: bool = False) -> np.ndarray:
    """Rows of A(m_true) for one or more true flux densities, shape (3 * k, p)."""
    expected = np.atleast_2d(np.asarray(expected, dtype=float))
    k = expected.shape[0]
    tx, ty, tz = expected[:, 0], expected[:, 1], expected[:, 2]

    a = np.zeros((k, COMPONENTS, GENERAL_PARAMS))
    a[:, 0, 0] = 1.0
    a[:, 1, 1] = 1.0
    a[:, 2, 2] = 1.0

    a[:, 0, 3] = tx
    a[:, 0, 6] = ty
    a[:, 0, 7] = tz

    a[:, 1, 4] = ty
    a[:, 1, 8] = tx
    a[:, 1, 9] = tz

    a[:, 2, 5] = tz
    a[:, 2, 10] = tx
    a[:, 2, 11] = ty

    a = a.reshape(k * COMPONENTS, GENERAL_PARAMS)
    if common_axis_used:
        a = a[:, COMMON_AXIS_COLUMNS]
    return a


def params_to_model(params: np.ndarray,
                    common_axis_used: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    """Split a parameter vector into hard-iron and soft-iron matrix."""
    params = np.asarray(params, dtype=float)
    if common_axis_used:
        full = np.zeros(GENERAL_PARAMS)
        full[COMMON_AXIS_COLUMNS] = params
        params = full

    bx, by, bz, sx, sy, sz, mxy, mxz, myx, myz, mzx, mzy = params
    hard_iron = np.array([bx, by, bz])
    mm = np.array([[sx, mxy, mxz],
                   [myx, sy, myz],
                   [mzx, mzy, sz]])
    return hard_iron, mm


def model_to_params(hard_iron: np.ndarray, mm: np.ndarray,
                    common_axis_used: bool = False) -> np.ndarray:
    """Pack hard-iron and soft-iron matrix into a parameter vector."""
    b = np.asarray(hard_iron, dtype=float).reshape(3)
    m = np.asarray(mm, dtype=float).reshape(3, 3)
    params = np.array([b[0], b[1], b[2],
                       m[0, 0], m[1, 1], m[2, 2],
                       m[0, 1], m[0, 2], m[1, 0], m[1, 2], m[2, 0], m[2, 1]])
    if common_axis_used:
        params = params[COMMON_AXIS_COLUMNS]
    return params


def predict_measurement(expected: np.ndarray, hard_iron: np.ndarray,
                        mm: np.ndarray) -> np.ndarray:
    """Reading produced by a magnetometer with the given errors."""
    return hard_iron + (np.eye(3) + mm) @ expected


def fix_measurement(measured: np.ndarray, hard_iron: np.ndarray,
                    mm: np.ndarray) -> np.ndarray:
    """Remove hard-iron and soft-iron errors from a raw reading."""
    return np.linalg.solve(np.eye(3) + mm, np.asarray(measured, dtype=float) - hard_iron)


class MagnetometerErrorModel:
    """
    Builds candidate calibrations and residuals for robust estimators.

    Candidates are obtained by solving the linear model on a subset of
    measurements. Subsets that do not constrain every parameter yield no
    candidate. When the linear solver is disabled, each candidate is instead
    refined by the optimizer starting from the initial hard-iron and
    soft-iron values.
    """

    def __init__(self, measurements: Sequence[MagnetometerMeasurement],
                 common_axis_used: bool = False, optimizer=None,
                 preliminary_subset_size: Optional[int] = None,
                 use_linear_calibrator: bool = True,
                 initial_hard_iron: Optional[np.ndarray] = None,
                 initial_mm: Optional[np.ndarray] = None):
        """
        Args:
            measurements: Measurements to calibrate from
            common_axis_used: Assume magnetometer and body z-axes match
            optimizer: MagnetometerOptimizer refining each preliminary solution, optional.
                       Required when use_linear_calibrator is False
            preliminary_subset_size: Measurements per subset, at least
                                     MINIMUM_MEASUREMENTS. Defaults to the minimum
            use_linear_calibrator: Solve subsets linearly instead of refining
                                   from the initial values
            initial_hard_iron: Start of the non-linear solve [T], zeros by default
            initial_mm: Start of the non-linear solve, zeros by default
        """
        self.measurements = list(measurements)
        self.common_axis_used = common_axis_used
        self.optimizer = optimizer
        self.preliminary_subset_size = preliminary_subset_size
        self.use_linear_calibrator = use_linear_calibrator
        self.initial_hard_iron = (np.zeros(3) if initial_hard_iron is None
                                  else np.asarray(initial_hard_iron, dtype=float).reshape(3))
        self.initial_mm = (np.zeros((3, 3)) if initial_mm is None
                           else np.asarray(initial_mm, dtype=float).reshape(3, 3))

    def total_samples(self) -> int:
        return len(self.measurements)

    def subset_size(self) -> int:
        return self.preliminary_subset_size or MINIMUM_MEASUREMENTS

    def is_ready(self) -> bool:
        if self.subset_size() < MINIMUM_MEASUREMENTS:
            return False
        if not self.use_linear_calibrator and self.optimizer is None:
            return False
        return len(self.measurements) >= self.subset_size()

    def estimate_preliminary_solutions(self, indices: Sequence[int]) -> List[PreliminaryResult]:
        subset = [self.measurements[i] for i in indices]

        if self.use_linear_calibrator:
            expected = np.array([m.expected for m in subset])
            measured = np.array([m.measured for m in subset])

            a = design_matrix(expected, self.common_axis_used)
            y = (measured - expected).reshape(-1)

            params, _, rank, _ = np.linalg.lstsq(a, y, rcond=None)
            if rank < a.shape[1]:
                return []
            hard_iron, mm = params_to_model(params, self.common_axis_used)
        else:
            hard_iron, mm = self.initial_hard_iron, self.initial_mm

        result = PreliminaryResult(hard_iron=hard_iron, mm=mm)

        if self.optimizer is not None:
            try:
                result = self.optimizer.optimize(subset, hard_iron, mm, self.common_axis_used)
            except RefinementError:
                return []

        return [result]

    def compute_residual(self, candidate: PreliminaryResult, index: int) -> float:
        measurement = self.measurements[index]
        predicted = predict_measurement(measurement.expected, candidate.hard_iron, candidate.mm)
        return float(np.linalg.norm(predicted - measurement.measured))
