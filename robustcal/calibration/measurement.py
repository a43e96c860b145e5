"""Magnetometer measurement container."""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np


@dataclass(frozen=True)
class MagnetometerMeasurement:
    """
    A single magnetometer reading with its ground truth.

    Attributes:
        measured: Sensed magnetic flux density in body frame [T] (3,)
        expected: True magnetic flux density in body frame [T] (3,)
        std: Standard deviation of the measurement noise [T], scalar or per axis
    """

    measured: np.ndarray
    expected: np.ndarray
    std: Optional[Union[float, np.ndarray]] = None

    def __post_init__(self):
        measured = np.array(self.measured, dtype=float).reshape(-1)
        expected = np.array(self.expected, dtype=float).reshape(-1)
        if measured.shape != (3,) or expected.shape != (3,):
            raise ValueError("Measured and expected flux densities must have 3 components")

        measured.setflags(write=False)
        expected.setflags(write=False)
        object.__setattr__(self, 'measured', measured)
        object.__setattr__(self, 'expected', expected)

        if self.std is not None:
            std = np.broadcast_to(np.asarray(self.std, dtype=float), (3,)).copy()
            if np.any(std <= 0):
                raise ValueError("Standard deviation must be positive")
            std.setflags(write=False)
            object.__setattr__(self, 'std', std)
