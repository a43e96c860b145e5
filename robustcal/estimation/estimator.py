"""
Robust estimation loop shared by RANSAC, LMedS, MSAC, PROSAC and PROMedS.

The estimator repeatedly draws a minimal subset of measurements, asks the
model for candidate solutions built from that subset, scores every candidate
against all measurements and keeps the best one. The number of iterations
shrinks as better candidates are found, following

    N_req = ceil(log(1 - confidence) / log(1 - w^n))

where w is the inlier ratio of the best candidate and n the subset size.
Median scoring derives its threshold from the candidate being scored, so
those runs only stop early once the best median residual reaches the stop
threshold.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from robustcal.config import RunConfig
from robustcal.estimation.sampling import SamplingStrategy, create_sampler
from robustcal.estimation.scoring import ScoringStrategy, lmeds_threshold, score_residuals
from robustcal.exceptions import (
    EstimationCancelledError,
    EstimationError,
    LockedError,
    NotReadyError,
)

logger = logging.getLogger(__name__)


class EstimationModel(Protocol):
    """Problem specific collaborator used by RobustEstimator."""

    def total_samples(self) -> int:
        ...

    def subset_size(self) -> int:
        ...

    def estimate_preliminary_solutions(self, indices: Sequence[int]) -> List[Any]:
        ...

    def compute_residual(self, candidate: Any, index: int) -> float:
        ...

    def is_ready(self) -> bool:
        ...


def _noop(*args):
    pass


@dataclass
class EstimatorListener:
    """
    Callbacks notified during estimation, on the calling thread.

    Each callback receives the notifying object first. Callbacks must not
    invoke the estimator again.
    """

    on_start: Callable = _noop
    on_end: Callable = _noop
    on_iteration: Callable = _noop
    on_progress: Callable = _noop


@dataclass(frozen=True)
class InliersData:
    """
    Inlier/outlier partition of the winning candidate.

    Attributes:
        inliers: Boolean flag per measurement
        residuals: Residual per measurement, None unless kept
        num_inliers: Number of inliers
        threshold: Threshold used to classify measurements. Derived from the
                   median residual for LMedS and PROMedS
    """

    inliers: np.ndarray
    residuals: Optional[np.ndarray]
    num_inliers: int
    threshold: float


@dataclass
class _RunState:
    required_iterations: int
    iteration: int = 0
    best_score: float = -math.inf
    best_model: Any = None
    best_inliers: Optional[np.ndarray] = None
    best_residuals: Optional[np.ndarray] = None
    best_threshold: Optional[float] = None
    last_progress: float = 0.0


def required_iterations(inlier_ratio: float, subset_size: int, confidence: float,
                        max_iterations: int) -> int:
    """Iterations needed to draw one outlier-free subset with the given confidence."""
    prob = inlier_ratio ** subset_size
    if prob >= 1.0:
        return 1
    if prob <= 0.0:
        return max_iterations

    iters = math.log(1.0 - confidence) / math.log1p(-prob)
    if not math.isfinite(iters) or iters >= max_iterations:
        return max_iterations
    return max(int(math.ceil(iters)), 1)


class RobustEstimator:
    """
    Generic robust estimator.

    The sampling strategy decides how subsets are drawn and the scoring
    strategy how candidates are compared; see estimation.factory for the
    pairs that make up each named method.
    """

    def __init__(self, model: EstimationModel,
                 sampling: SamplingStrategy = SamplingStrategy.UNIFORM,
                 scoring: ScoringStrategy = ScoringStrategy.INLIER_COUNT,
                 quality_scores: Optional[Sequence[float]] = None,
                 listener: Optional[EstimatorListener] = None,
                 config: Optional[RunConfig] = None,
                 random_state=None):
        """
        Initialize estimator.

        Args:
            model: Collaborator building candidates and residuals
            sampling: Subset selection strategy
            scoring: Residual reduction strategy
            quality_scores: One score per measurement, required by prioritized sampling
            listener: Progress callbacks, no-op when omitted
            config: Default run configuration
            random_state: Seed or numpy Generator. An integer seed restarts the
                          same random sequence on every run
        """
        self.model = model
        self.sampling = sampling
        self.scoring = scoring
        self.quality_scores = (None if quality_scores is None
                               else np.asarray(quality_scores, dtype=float))
        self.listener = listener or EstimatorListener()
        self.config = config or RunConfig()
        self.random_state = random_state
        self.iterations = None

        self._lock = threading.Lock()
        self._state = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def best_score(self) -> Optional[float]:
        """Score retained by the current run, None when idle."""
        return None if self._state is None else self._state.best_score

    def is_ready(self) -> bool:
        """Check that the model and quality scores allow a run."""
        if not self.model.is_ready():
            return False
        total = self.model.total_samples()
        if total < self.model.subset_size():
            return False
        if self.sampling is SamplingStrategy.PRIORITIZED:
            scores = self.quality_scores
            if scores is None or scores.ndim != 1 or len(scores) != total:
                return False
            if not np.all(np.isfinite(scores)) or np.any(scores < 0):
                return False
        return True

    def estimate(self, config: Optional[RunConfig] = None,
                 cancel_event: Optional[threading.Event] = None) -> Tuple[Any, InliersData]:
        """
        Run the robust estimation.

        Args:
            config: Run configuration, defaults to the one given at construction
            cancel_event: Event checked at each iteration boundary to abort the run

        Returns:
            Tuple of (best candidate, InliersData)

        Raises:
            LockedError: If the estimator is already running
            NotReadyError: If inputs or configuration are invalid
            EstimationError: If no candidate was found
        """
        if not self._lock.acquire(blocking=False):
            raise LockedError("Estimator is already running")

        try:
            run_config = config or self.config
            if not self.is_ready():
                raise NotReadyError("Estimator is not ready")
            run_config.validate(requires_threshold=self.scoring.uses_threshold)

            return self._run(run_config, cancel_event)
        finally:
            self._state = None
            self._lock.release()

    def _rng(self) -> np.random.Generator:
        if isinstance(self.random_state, np.random.Generator):
            return self.random_state
        return np.random.default_rng(self.random_state)

    def _run(self, config: RunConfig, cancel_event) -> Tuple[Any, InliersData]:
        model = self.model
        total = model.total_samples()
        subset_size = model.subset_size()

        sampler = create_sampler(
            self.sampling, total, subset_size, self._rng(),
            quality_scores=self.quality_scores,
            growth_iterations=config.prosac_growth_iterations or config.max_iterations,
        )

        state = _RunState(required_iterations=config.max_iterations)
        self._state = state

        logger.debug("Starting %s/%s estimation over %d samples",
                     self.sampling.value, self.scoring.value, total)
        self.listener.on_start(self)

        while state.iteration < state.required_iterations:
            if cancel_event is not None and cancel_event.is_set():
                raise EstimationCancelledError(
                    f"Estimation cancelled after {state.iteration} iterations")

            indices = sampler.draw(state.iteration + 1)
            for candidate in model.estimate_preliminary_solutions(indices):
                residuals = np.array(
                    [model.compute_residual(candidate, i) for i in range(total)],
                    dtype=float,
                )
                score, inliers = score_residuals(residuals, self.scoring, config.threshold)
                if score > state.best_score:
                    self._update_best(state, config, candidate, score, residuals,
                                      inliers, total, subset_size)

            state.iteration += 1
            self.listener.on_iteration(self, state.iteration)
            self._notify_progress(state, config)

        if state.best_model is None:
            raise EstimationError(
                f"No valid candidate found after {state.iteration} iterations")

        if state.last_progress < 1.0:
            self.listener.on_progress(self, 1.0)

        inliers = state.best_inliers.copy()
        inliers.setflags(write=False)
        residuals = None
        if config.keep_residuals:
            residuals = state.best_residuals.copy()
            residuals.setflags(write=False)

        inliers_data = InliersData(
            inliers=inliers,
            residuals=residuals,
            num_inliers=int(np.count_nonzero(inliers)),
            threshold=state.best_threshold,
        )
        self.iterations = state.iteration

        logger.info("Estimation finished after %d iterations with %d/%d inliers",
                    state.iteration, inliers_data.num_inliers, total)
        self.listener.on_end(self)

        return state.best_model, inliers_data

    def _update_best(self, state: _RunState, config: RunConfig, candidate, score: float,
                     residuals: np.ndarray, inliers: Optional[np.ndarray],
                     total: int, subset_size: int):
        if self.scoring.uses_threshold:
            threshold = config.threshold
        else:
            threshold = lmeds_threshold(-score, total, subset_size,
                                        config.inlier_factor, config.stop_threshold)
            inliers = residuals <= threshold

        state.best_score = score
        state.best_model = candidate
        state.best_inliers = inliers
        state.best_residuals = residuals
        state.best_threshold = threshold

        ratio = np.count_nonzero(inliers) / total
        if self.scoring.uses_threshold:
            needed = required_iterations(ratio, subset_size, config.confidence,
                                         config.max_iterations)
            state.required_iterations = min(state.required_iterations, needed)
        elif config.stop_threshold is not None and math.sqrt(-score) <= config.stop_threshold:
            # the derived threshold depends on the candidate itself, so only
            # the stop threshold may end a median run early
            state.required_iterations = min(state.required_iterations, state.iteration + 1)

        logger.debug("Iteration %d: new best score %g, inlier ratio %.3f, %d iterations required",
                     state.iteration + 1, score, ratio, state.required_iterations)

    def _notify_progress(self, state: _RunState, config: RunConfig):
        budget = max(min(state.required_iterations, config.max_iterations), 1)
        progress = min(state.iteration / budget, 1.0)
        if progress - state.last_progress > config.progress_delta:
            state.last_progress = progress
            self.listener.on_progress(self, progress)
