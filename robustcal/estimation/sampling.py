"""Minimal subset selection for robust estimators."""

import math
from enum import Enum
from typing import Optional

import numpy as np

from robustcal.exceptions import NotReadyError


class SamplingStrategy(Enum):
    """How minimal subsets are drawn."""

    UNIFORM = 'uniform'
    PRIORITIZED = 'prioritized'


def _check_sizes(total_samples: int, subset_size: int):
    if subset_size < 1:
        raise NotReadyError(f"Subset size must be positive, got {subset_size}")
    if total_samples < subset_size:
        raise NotReadyError(
            f"Not enough samples: {total_samples} available, {subset_size} required")


class UniformSampler:
    """Draw subsets uniformly at random without replacement."""

    def __init__(self, total_samples: int, subset_size: int, rng: np.random.Generator):
        _check_sizes(total_samples, subset_size)
        self.total_samples = total_samples
        self.subset_size = subset_size
        self.rng = rng

    def draw(self, iteration: int = 0) -> np.ndarray:
        """Return `subset_size` distinct indices in [0, total_samples)."""
        return self.rng.choice(self.total_samples, self.subset_size, replace=False)


class ProsacSampler:
    """
    Progressive sampling over measurements sorted by quality.

    Samples are drawn from a pool made of the best ranked measurements. The
    pool starts at `subset_size` and grows by one each time the iteration
    index passes the PROSAC growth schedule T'_n, so that it spans all
    samples after roughly `growth_iterations` iterations. While the schedule
    has not been exceeded, every draw contains the newest pool member.
    """

    def __init__(self, quality_scores: np.ndarray, subset_size: int,
                 growth_iterations: int, rng: np.random.Generator):
        scores = np.asarray(quality_scores, dtype=float)
        _check_sizes(len(scores), subset_size)
        if growth_iterations < 1:
            raise NotReadyError("Growth iterations must be positive")

        self.total_samples = len(scores)
        self.subset_size = subset_size
        self.rng = rng

        # stable sort keeps caller order among equal scores
        self.order = np.argsort(-scores, kind='stable')

        m = subset_size
        n_total = self.total_samples
        tn = float(growth_iterations)
        for i in range(m):
            tn *= (m - i) / (n_total - i)

        self._tn = tn
        self._tn_prime = 1
        self._pool_size = m

    @property
    def pool_size(self) -> int:
        """Number of top ranked samples currently eligible."""
        return self._pool_size

    def _grow(self, iteration: int):
        m = self.subset_size
        while iteration > self._tn_prime and self._pool_size < self.total_samples:
            n = self._pool_size
            tn_next = self._tn * (n + 1) / (n + 1 - m)
            self._tn_prime += max(int(math.ceil(tn_next - self._tn)), 0)
            self._tn = tn_next
            self._pool_size = n + 1

    def draw(self, iteration: int) -> np.ndarray:
        """
        Draw a subset for the given 1-based iteration.

        Args:
            iteration: Index of the current iteration, starting at 1

        Returns:
            Indices into the original measurement order
        """
        self._grow(iteration)
        n = self._pool_size
        m = self.subset_size

        if self._tn_prime < iteration:
            positions = self.rng.choice(n, m, replace=False)
        else:
            positions = np.append(
                self.rng.choice(n - 1, m - 1, replace=False), n - 1
            ) if m > 1 else np.array([n - 1])

        return self.order[positions]


def create_sampler(strategy: SamplingStrategy, total_samples: int, subset_size: int,
                   rng: np.random.Generator, quality_scores: Optional[np.ndarray] = None,
                   growth_iterations: Optional[int] = None):
    """Build the sampler for a strategy."""
    if strategy is SamplingStrategy.PRIORITIZED:
        if quality_scores is None or len(quality_scores) != total_samples:
            raise NotReadyError("Prioritized sampling requires one quality score per sample")
        return ProsacSampler(quality_scores, subset_size,
                             growth_iterations or 1, rng)
    return UniformSampler(total_samples, subset_size, rng)
