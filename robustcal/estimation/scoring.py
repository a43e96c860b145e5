"""Reduction of per-measurement residuals into a comparable model score."""

from enum import Enum
from typing import Optional, Tuple

import numpy as np

# Consistency constant of the median absolute deviation for normal errors
MEDIAN_TO_SIGMA = 1.4826

# Small sample correction of the LMedS scale estimate
SMALL_SAMPLE_CORRECTION = 5.0


class ScoringStrategy(Enum):
    """How residuals of all measurements are reduced into one score."""

    INLIER_COUNT = 'inlier_count'
    TRUNCATED_COST = 'truncated_cost'
    MEDIAN = 'median'
    PRIORITIZED_MEDIAN = 'prioritized_median'

    @property
    def uses_threshold(self) -> bool:
        """Whether scoring compares residuals against a fixed threshold."""
        return self in (ScoringStrategy.INLIER_COUNT, ScoringStrategy.TRUNCATED_COST)


def score_residuals(residuals: np.ndarray, strategy: ScoringStrategy,
                    threshold: Optional[float] = None) -> Tuple[float, Optional[np.ndarray]]:
    """
    Score a candidate from its residuals. Higher scores are better.

    Args:
        residuals: Non-negative residual of every measurement
        strategy: Reduction to apply
        threshold: Inlier threshold, required by threshold based strategies

    Returns:
        Tuple of (score, inlier flags). Median strategies return no flags,
        their threshold is only derived once the best model is known.
    """
    residuals = np.asarray(residuals, dtype=float)

    if strategy is ScoringStrategy.INLIER_COUNT:
        inliers = residuals <= threshold
        return float(np.count_nonzero(inliers)), inliers

    if strategy is ScoringStrategy.TRUNCATED_COST:
        inliers = residuals <= threshold
        cost = np.minimum(residuals ** 2, threshold ** 2)
        return -float(np.sum(cost)), inliers

    return -float(np.median(residuals ** 2)), None


def lmeds_threshold(median_sq: float, total_samples: int, subset_size: int,
                    inlier_factor: float = 1.5, min_threshold: Optional[float] = None) -> float:
    """
    Robust inlier threshold derived from the best median squared residual.

    Rousseeuw's scale estimate 1.4826 * (1 + 5 / (N - n)) * sqrt(median),
    multiplied by `inlier_factor`. The correction term is skipped when
    N == n, and `min_threshold` bounds the result from below.
    """
    scale = MEDIAN_TO_SIGMA
    if total_samples > subset_size:
        scale *= 1.0 + SMALL_SAMPLE_CORRECTION / (total_samples - subset_size)

    threshold = inlier_factor * scale * float(np.sqrt(max(median_sq, 0.0)))
    if min_threshold is not None:
        threshold = max(threshold, min_threshold)
    return threshold
