"""Robust estimation core: sampling, scoring and the iteration loop."""

from .estimator import EstimatorListener, InliersData, RobustEstimator, required_iterations
from .factory import RobustEstimatorMethod, create_estimator
from .sampling import ProsacSampler, SamplingStrategy, UniformSampler
from .scoring import ScoringStrategy, lmeds_threshold, score_residuals

__all__ = [
    'EstimatorListener',
    'InliersData',
    'RobustEstimator',
    'required_iterations',
    'RobustEstimatorMethod',
    'create_estimator',
    'ProsacSampler',
    'SamplingStrategy',
    'UniformSampler',
    'ScoringStrategy',
    'lmeds_threshold',
    'score_residuals',
]
