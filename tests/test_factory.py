"""Tests for robust method construction."""

import pytest
import numpy as np

from robustcal.estimation.factory import STRATEGIES, RobustEstimatorMethod, create_estimator
from robustcal.estimation.sampling import SamplingStrategy
from robustcal.estimation.scoring import ScoringStrategy
from robustcal.exceptions import NotReadyError


class PointsModel:
    """Minimal model estimating the mean of scalar samples."""

    def __init__(self, values):
        self.values = np.asarray(values, dtype=float)

    def total_samples(self):
        return len(self.values)

    def subset_size(self):
        return 1

    def is_ready(self):
        return len(self.values) >= 1

    def estimate_preliminary_solutions(self, indices):
        return [float(np.mean(self.values[indices]))]

    def compute_residual(self, candidate, index):
        return abs(self.values[index] - candidate)


class TestRobustEstimatorMethod:
    """Test method names."""

    @pytest.mark.parametrize('name, method', [
        ('ransac', RobustEstimatorMethod.RANSAC),
        ('LMedS', RobustEstimatorMethod.LMEDS),
        ('MSAC', RobustEstimatorMethod.MSAC),
        ('prosac', RobustEstimatorMethod.PROSAC),
        ('PROMedS', RobustEstimatorMethod.PROMEDS),
    ])
    def test_parse(self, name, method):
        """Test case-insensitive parsing."""
        assert RobustEstimatorMethod.parse(name) is method
        assert RobustEstimatorMethod.parse(method) is method

    def test_parse_unknown(self):
        """Test rejection of unknown names."""
        with pytest.raises(ValueError, match='ransac'):
            RobustEstimatorMethod.parse('mlesac')

    def test_quality_scores_required(self):
        """Test which methods need quality scores."""
        required = {m for m in RobustEstimatorMethod if m.requires_quality_scores}
        assert required == {RobustEstimatorMethod.PROSAC, RobustEstimatorMethod.PROMEDS}


class TestCreateEstimator:
    """Test estimator wiring."""

    def test_every_method_has_strategies(self):
        """Test the sampling and scoring pair of each method."""
        assert set(STRATEGIES) == set(RobustEstimatorMethod)
        assert STRATEGIES[RobustEstimatorMethod.RANSAC] == (
            SamplingStrategy.UNIFORM, ScoringStrategy.INLIER_COUNT)
        assert STRATEGIES[RobustEstimatorMethod.LMEDS] == (
            SamplingStrategy.UNIFORM, ScoringStrategy.MEDIAN)
        assert STRATEGIES[RobustEstimatorMethod.MSAC] == (
            SamplingStrategy.UNIFORM, ScoringStrategy.TRUNCATED_COST)
        assert STRATEGIES[RobustEstimatorMethod.PROSAC] == (
            SamplingStrategy.PRIORITIZED, ScoringStrategy.INLIER_COUNT)
        assert STRATEGIES[RobustEstimatorMethod.PROMEDS] == (
            SamplingStrategy.PRIORITIZED, ScoringStrategy.PRIORITIZED_MEDIAN)

    @pytest.mark.parametrize('method', list(RobustEstimatorMethod))
    def test_created_strategies(self, method):
        """Test that created estimators use their method's strategies."""
        estimator = create_estimator(method, PointsModel([1.0, 2.0]), quality_scores=[1.0, 0.5])
        assert (estimator.sampling, estimator.scoring) == STRATEGIES[method]

    @pytest.mark.parametrize('method', ['prosac', 'promeds'])
    def test_prioritized_without_scores_not_ready(self, method):
        """Test that prioritized methods need quality scores."""
        estimator = create_estimator(method, PointsModel([1.0, 1.0, 1.0]))
        assert not estimator.is_ready()
        with pytest.raises(NotReadyError):
            estimator.estimate()

    def test_uniform_methods_ignore_scores(self):
        """Test that invalid scores do not affect uniform methods."""
        estimator = create_estimator('ransac', PointsModel([1.0, 1.0, 1.0]),
                                     quality_scores=[1.0])
        assert estimator.is_ready()
