"""Synthetic magnetometer measurements from a known error model."""

from typing import List, Optional, Sequence

import numpy as np

from robustcal.calibration.magnetometer import predict_measurement
from robustcal.calibration.measurement import MagnetometerMeasurement

# Typical magnitude of the Earth magnetic field [T]
EARTH_FIELD_MAGNITUDE = 50e-6


def random_field_directions(count: int, rng: np.random.Generator,
                            magnitude: float = EARTH_FIELD_MAGNITUDE) -> np.ndarray:
    """Flux densities of fixed magnitude pointing in random directions, shape (count, 3)."""
    directions = rng.normal(size=(count, 3))
    directions /= np.linalg.norm(directions, axis=1, keepdims=True)
    return magnitude * directions


def generate_measurements(hard_iron: np.ndarray, mm: np.ndarray, count: int,
                          noise_std: float = 0.0,
                          outlier_indices: Optional[Sequence[int]] = None,
                          outlier_error: float = 0.0,
                          random_state=None,
                          with_std: bool = False) -> List[MagnetometerMeasurement]:
    """
    Generate measurements of a magnetometer with known errors.

    Args:
        hard_iron: Hard-iron bias [T]
        mm: Soft-iron matrix
        count: Number of measurements
        noise_std: Standard deviation of Gaussian noise added per axis [T]
        outlier_indices: Measurements receiving an extra gross error
        outlier_error: Magnitude of the gross error, in a random direction [T]
        random_state: Seed or numpy Generator
        with_std: Attach noise_std to each measurement

    Returns:
        List of MagnetometerMeasurement
    """
    rng = (random_state if isinstance(random_state, np.random.Generator)
           else np.random.default_rng(random_state))
    hard_iron = np.asarray(hard_iron, dtype=float)
    mm = np.asarray(mm, dtype=float)

    expected = random_field_directions(count, rng)
    outliers = set(outlier_indices or [])

    measurements = []
    for i in range(count):
        measured = predict_measurement(expected[i], hard_iron, mm)
        if noise_std > 0.0:
            measured = measured + rng.normal(scale=noise_std, size=3)
        if i in outliers:
            direction = rng.normal(size=3)
            measured = measured + outlier_error * direction / np.linalg.norm(direction)

        std = noise_std if with_std and noise_std > 0.0 else None
        measurements.append(MagnetometerMeasurement(measured, expected[i], std))

    return measurements
