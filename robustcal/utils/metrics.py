"""Timing and residual metrics for calibration runs."""

import numpy as np
from typing import Dict, Optional
from time import perf_counter


class PerformanceMetrics:
    """Track performance metrics."""

    def __init__(self):
        self.start_times = {}
        self.durations = {}

    def start_timer(self, name: str):
        """Start timing an operation."""
        self.start_times[name] = perf_counter()

    def stop_timer(self, name: str) -> float:
        """Stop timing and return duration in milliseconds."""
        if name not in self.start_times:
            return 0.0
        duration = (perf_counter() - self.start_times.pop(name)) * 1000
        self.durations[name] = duration
        return duration

    def get_summary(self) -> Dict[str, float]:
        """Get summary of all timings."""
        return self.durations.copy()


class ResidualMetrics:
    """Summarize residuals of a calibration."""

    @staticmethod
    def summarize(residuals: np.ndarray, mask: Optional[np.ndarray] = None) -> Dict[str, float]:
        """Mean, median, max and std of residuals, optionally restricted to a mask."""
        residuals = np.asarray(residuals, dtype=float)
        if mask is not None:
            residuals = residuals[np.asarray(mask, dtype=bool)]

        if residuals.size == 0:
            return {
                'mean_error': float('nan'),
                'median_error': float('nan'),
                'max_error': float('nan'),
                'std_error': float('nan')
            }

        return {
            'mean_error': float(np.mean(residuals)),
            'median_error': float(np.median(residuals)),
            'max_error': float(np.max(residuals)),
            'std_error': float(np.std(residuals))
        }
