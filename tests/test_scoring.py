"""Tests for residual scoring."""

import pytest
import numpy as np

from robustcal.estimation.scoring import (
    MEDIAN_TO_SIGMA,
    ScoringStrategy,
    lmeds_threshold,
    score_residuals,
)


class TestScoreResiduals:
    """Test residual reductions."""

    def test_inlier_count(self):
        """Test RANSAC counting, residuals equal to the threshold are inliers."""
        score, inliers = score_residuals([0.1, 0.5, 0.6, 2.0], ScoringStrategy.INLIER_COUNT, 0.5)
        assert score == 2
        np.testing.assert_array_equal(inliers, [True, True, False, False])

    def test_truncated_cost(self):
        """Test MSAC truncated squared cost."""
        score, inliers = score_residuals([0.1, 0.2, 3.0], ScoringStrategy.TRUNCATED_COST, 1.0)
        assert score == pytest.approx(-(0.01 + 0.04 + 1.0))
        np.testing.assert_array_equal(inliers, [True, True, False])

    def test_truncated_cost_prefers_tighter_fit(self):
        """Test that MSAC separates models with equal inlier counts."""
        tight, _ = score_residuals([0.1, 0.1, 5.0], ScoringStrategy.TRUNCATED_COST, 1.0)
        loose, _ = score_residuals([0.9, 0.9, 5.0], ScoringStrategy.TRUNCATED_COST, 1.0)
        count_tight, _ = score_residuals([0.1, 0.1, 5.0], ScoringStrategy.INLIER_COUNT, 1.0)
        count_loose, _ = score_residuals([0.9, 0.9, 5.0], ScoringStrategy.INLIER_COUNT, 1.0)
        assert tight > loose
        assert count_tight == count_loose

    @pytest.mark.parametrize("strategy", [ScoringStrategy.MEDIAN,
                                          ScoringStrategy.PRIORITIZED_MEDIAN])
    def test_median(self, strategy):
        """Test median of squared residuals without inlier flags."""
        score, inliers = score_residuals([1.0, 2.0, 3.0, 100.0, 0.5], strategy)
        assert score == pytest.approx(-4.0)
        assert inliers is None

    def test_threshold_usage(self):
        """Test which strategies rely on a fixed threshold."""
        assert ScoringStrategy.INLIER_COUNT.uses_threshold
        assert ScoringStrategy.TRUNCATED_COST.uses_threshold
        assert not ScoringStrategy.MEDIAN.uses_threshold
        assert not ScoringStrategy.PRIORITIZED_MEDIAN.uses_threshold


class TestLmedsThreshold:
    """Test robust threshold derivation."""

    def test_formula(self):
        """Test scale estimate with small sample correction."""
        threshold = lmeds_threshold(4.0, 14, 4, inlier_factor=1.5)
        assert threshold == pytest.approx(1.5 * MEDIAN_TO_SIGMA * 1.5 * 2.0)

    def test_no_correction_for_minimal_set(self):
        """Test that N == n skips the correction term."""
        assert lmeds_threshold(1.0, 4, 4, inlier_factor=1.0) == pytest.approx(MEDIAN_TO_SIGMA)

    def test_floor(self):
        """Test that the minimum threshold bounds the result."""
        assert lmeds_threshold(0.0, 10, 4, min_threshold=1e-9) == 1e-9
        assert lmeds_threshold(1.0, 10, 4, min_threshold=1e-9) > 1e-9
