"""Construction of named robust estimation methods."""

from enum import Enum
from typing import Optional, Sequence, Union

from robustcal.config import RunConfig
from robustcal.estimation.estimator import EstimationModel, EstimatorListener, RobustEstimator
from robustcal.estimation.sampling import SamplingStrategy
from robustcal.estimation.scoring import ScoringStrategy


class RobustEstimatorMethod(Enum):
    """Available robust estimation methods."""

    RANSAC = 'ransac'
    LMEDS = 'lmeds'
    MSAC = 'msac'
    PROSAC = 'prosac'
    PROMEDS = 'promeds'

    @classmethod
    def parse(cls, value: Union[str, "RobustEstimatorMethod"]) -> "RobustEstimatorMethod":
        """Accept a method or its case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            names = ', '.join(m.value for m in cls)
            raise ValueError(f"Unknown robust method '{value}', expected one of: {names}")

    @property
    def requires_quality_scores(self) -> bool:
        return self in (RobustEstimatorMethod.PROSAC, RobustEstimatorMethod.PROMEDS)


STRATEGIES = {
    RobustEstimatorMethod.RANSAC: (SamplingStrategy.UNIFORM, ScoringStrategy.INLIER_COUNT),
    RobustEstimatorMethod.LMEDS: (SamplingStrategy.UNIFORM, ScoringStrategy.MEDIAN),
    RobustEstimatorMethod.MSAC: (SamplingStrategy.UNIFORM, ScoringStrategy.TRUNCATED_COST),
    RobustEstimatorMethod.PROSAC: (SamplingStrategy.PRIORITIZED, ScoringStrategy.INLIER_COUNT),
    RobustEstimatorMethod.PROMEDS: (SamplingStrategy.PRIORITIZED, ScoringStrategy.PRIORITIZED_MEDIAN),
}


def create_estimator(method: Union[str, RobustEstimatorMethod], model: EstimationModel,
                     quality_scores: Optional[Sequence[float]] = None,
                     listener: Optional[EstimatorListener] = None,
                     config: Optional[RunConfig] = None,
                     random_state=None) -> RobustEstimator:
    """
    Create an estimator for a named method.

    Args:
        method: Method or its name
        model: Collaborator building candidates and residuals
        quality_scores: Per measurement quality, used by PROSAC and PROMedS only
        listener: Progress callbacks
        config: Default run configuration
        random_state: Seed or numpy Generator

    Returns:
        RobustEstimator wired with the method's sampling and scoring strategies.
        Prioritized methods without valid quality scores are not ready.
    """
    method = RobustEstimatorMethod.parse(method)
    sampling, scoring = STRATEGIES[method]

    return RobustEstimator(
        model,
        sampling=sampling,
        scoring=scoring,
        quality_scores=quality_scores if method.requires_quality_scores else None,
        listener=listener,
        config=config,
        random_state=random_state,
    )
