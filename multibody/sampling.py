"""
multibody.sampling

Monte Carlo bounds for a triple of tree nodes.

When the deterministic interval bounds are too loose to prune, the gradient
components can instead be estimated from a random subset of the point
triples the nodes represent. Triples are drawn in batches; after every batch
the confidence-interval error is re-estimated and fed to the same relative
error test as the deterministic path.

Stopping rule
-------------
* prunable: the test passes on the current estimate;
* not prunable: an error is non-finite, ``max_num_samples`` accepted
  samples have been drawn, or the draw budget is exhausted by rejections.

A prune deposits ``mean ± error`` bounds (estimate = sample mean). When a
node repeats in the triple, roles that pair it with the same partner node
are pooled: their means are averaged and the largest error is kept.
"""
from __future__ import annotations

import logging
import warnings
from typing import Sequence

import numpy as np
from numba import njit
from numpy.typing import NDArray

from ._validation import validate_coefficient, validate_sampling
from .constants import MC_BATCH_SIZE, MC_MAX_DRAWS_PER_SAMPLE, MC_MAX_NUM_SAMPLES
from .errors import errors_are_finite, monte_carlo_errors
from .gradients import GradientBounds, _point_triple_gradients, _squared_distance
from .pruning import is_prunable

__all__ = ["RunningGradientStatistics", "MonteCarloSampler"]

logger = logging.getLogger(__name__)


@njit(cache=True)
def _sample_gradients(data: np.ndarray, triples: np.ndarray, coeff: float) -> np.ndarray:
    """Exact gradients of each sampled triple, columns (n1, p1, n2, p2, n3, p3)."""
    out = np.empty((triples.shape[0], 6))
    for m in range(triples.shape[0]):
        i = triples[m, 0]
        j = triples[m, 1]
        k = triples[m, 2]
        n1, p1, n2, p2, n3, p3 = _point_triple_gradients(
            _squared_distance(data, i, j),
            _squared_distance(data, i, k),
            _squared_distance(data, j, k), coeff)
        out[m, 0] = n1
        out[m, 1] = p1
        out[m, 2] = n2
        out[m, 3] = p2
        out[m, 4] = n3
        out[m, 5] = p3
    return out


def _ascending_triple_exists(nodes: Sequence) -> bool:
    """Whether some i < j < k lies in the three node ranges."""
    i = nodes[0].begin
    if i >= nodes[0].begin + nodes[0].count:
        return False
    j = max(nodes[1].begin, i + 1)
    if j >= nodes[1].begin + nodes[1].count:
        return False
    k = max(nodes[2].begin, j + 1)
    return k < nodes[2].begin + nodes[2].count


def _equivalent_roles(nodes: Sequence) -> list[list[int]]:
    """
    Groups of roles that describe the same kind of pair.

    Sampled triples are strictly ascending, so within a repeated node the
    lower-indexed point always takes the earlier position. Roles that differ
    only in which copy of the repeated node they use then see different
    subsets of points, and only their average is an unbiased estimate.
    """
    if nodes[0] is nodes[1]:
        if nodes[1] is nodes[2]:
            return [[0, 1, 2]]
        # Pairs (0, 2) and (1, 2) both join a point of A with one of B.
        return [[1, 2]]
    if nodes[1] is nodes[2]:
        # Pairs (0, 1) and (0, 2) both join a point of A with one of B.
        return [[0, 1]]
    return []


def _symmetrize(values: NDArray, groups: list[list[int]], reduce) -> NDArray:
    """Replace each group of role entries by ``reduce`` over the group."""
    values = np.array(values, dtype=np.float64)
    for group in groups:
        values[group] = reduce(values[group])
    return values


class RunningGradientStatistics:
    """
    Order statistics and raw moments of sampled gradient components.

    All arrays have shape ``(3,)`` and are indexed by pairwise role.
    """

    def __init__(self):
        self.num_samples = 0
        self.min_negative = np.full(3, np.inf)
        self.max_negative = np.full(3, -np.inf)
        self.min_positive = np.full(3, np.inf)
        self.max_positive = np.full(3, -np.inf)
        self.negative_sum = np.zeros(3)
        self.negative_squared_sum = np.zeros(3)
        self.positive_sum = np.zeros(3)
        self.positive_squared_sum = np.zeros(3)

    def update(self, negative: NDArray, positive: NDArray) -> None:
        """
        Fold samples into the statistics.

        Parameters
        ----------
        negative, positive : np.ndarray, shape (M, 3)
            Per-sample gradient components.
        """
        if negative.shape[0] == 0:
            return
        self.num_samples += negative.shape[0]
        self.min_negative = np.minimum(self.min_negative, negative.min(axis=0))
        self.max_negative = np.maximum(self.max_negative, negative.max(axis=0))
        self.min_positive = np.minimum(self.min_positive, positive.min(axis=0))
        self.max_positive = np.maximum(self.max_positive, positive.max(axis=0))
        self.negative_sum += negative.sum(axis=0)
        self.negative_squared_sum += (negative * negative).sum(axis=0)
        self.positive_sum += positive.sum(axis=0)
        self.positive_squared_sum += (positive * positive).sum(axis=0)

    def means(self) -> tuple[NDArray, NDArray]:
        return (self.negative_sum / self.num_samples,
                self.positive_sum / self.num_samples)

    def errors(self, z_score: float) -> tuple[NDArray, NDArray]:
        negative_error = monte_carlo_errors(self.negative_sum, self.negative_squared_sum,
                                            self.num_samples, z_score)
        positive_error = monte_carlo_errors(self.positive_sum, self.positive_squared_sum,
                                            self.num_samples, z_score)
        return negative_error, positive_error

    def observed_bounds(self) -> GradientBounds:
        """Smallest and largest sampled value per component."""
        return GradientBounds(self.min_negative, self.max_negative,
                              self.min_positive, self.max_positive)


class MonteCarloSampler:
    """
    Batch sampler of point triples from three tree nodes.

    Parameters
    ----------
    coefficient : float
        Axilrod-Teller coefficient.
    batch_size : int, optional
        Accepted samples per round. Default 25.
    max_num_samples : int, optional
        Cap on accepted samples per node triple. Default 250.
    max_draws_per_sample : int, optional
        Draws (accepted or rejected) allowed per accepted sample of the cap.
        Default 100.
    rng : np.random.Generator or int or None, optional
        Random generator or seed.
    """

    def __init__(
        self,
        coefficient: float,
        batch_size: int = MC_BATCH_SIZE,
        max_num_samples: int = MC_MAX_NUM_SAMPLES,
        max_draws_per_sample: int = MC_MAX_DRAWS_PER_SAMPLE,
        rng: np.random.Generator | int | None = None,
    ):
        self.coefficient = validate_coefficient(coefficient)
        (self.batch_size, self.max_num_samples,
         self.max_draws_per_sample) = validate_sampling(
            batch_size, max_num_samples, max_draws_per_sample)
        self.rng = np.random.default_rng(rng)

    def draw_triples(self, nodes: Sequence, num: int,
                     max_draws: int | None = None) -> tuple[NDArray, int]:
        """
        Draw up to ``num`` strictly ascending index triples.

        Candidates are drawn uniformly from each node's point range and any
        candidate that is not strictly ascending is rejected.

        Returns
        -------
        triples : np.ndarray, shape (M, 3), M <= num
        num_draws : int
            Candidates drawn, rejected ones included.
        """
        if max_draws is None:
            max_draws = num * self.max_draws_per_sample

        accepted = []
        num_accepted = 0
        num_draws = 0
        while num_accepted < num and num_draws < max_draws:
            size = min(max(2 * (num - num_accepted), 16), max_draws - num_draws)
            candidates = np.column_stack([
                self.rng.integers(node.begin, node.begin + node.count, size=size)
                for node in nodes
            ])
            num_draws += size
            keep = (candidates[:, 0] < candidates[:, 1]) & (candidates[:, 1] < candidates[:, 2])
            candidates = candidates[keep][:num - num_accepted]
            accepted.append(candidates)
            num_accepted += candidates.shape[0]

        if not accepted:
            return np.empty((0, 3), dtype=np.int64), num_draws
        return np.concatenate(accepted, axis=0).astype(np.int64), num_draws

    def sample_gradients(self, data: NDArray, triples: NDArray) -> tuple[NDArray, NDArray]:
        """Exact (negative, positive) components, each of shape (M, 3)."""
        g = _sample_gradients(data, triples, self.coefficient)
        return g[:, 0::2], g[:, 1::2]

    def run(
        self,
        data: NDArray,
        nodes: Sequence,
        num_pairs: tuple[float, float, float],
        relative_error: float,
        z_score: float,
        total_n_minus_one_num_tuples: float,
    ) -> tuple[bool, GradientBounds | None, RunningGradientStatistics]:
        """
        Sample until the triple prunes or the budget runs out.

        Returns
        -------
        prunable : bool
        bounds : GradientBounds or None
            ``mean ± error`` bounds when prunable, otherwise None.
        statistics : RunningGradientStatistics
        """
        statistics = RunningGradientStatistics()
        if not _ascending_triple_exists(nodes):
            logger.debug("No ascending index triple in %s; skipping sampling.",
                         [(n.begin, n.count) for n in nodes])
            return False, None, statistics

        groups = _equivalent_roles(nodes)
        draw_budget = self.max_num_samples * self.max_draws_per_sample
        num_draws = 0

        while statistics.num_samples < self.max_num_samples:
            num = min(self.batch_size, self.max_num_samples - statistics.num_samples)
            triples, draws = self.draw_triples(nodes, num, max_draws=draw_budget - num_draws)
            num_draws += draws

            negative, positive = self.sample_gradients(data, triples)
            statistics.update(negative, positive)

            if triples.shape[0] < num:
                warnings.warn(
                    f"Monte Carlo draw budget ({draw_budget}) exhausted after "
                    f"{statistics.num_samples} accepted samples.",
                    RuntimeWarning,
                )
                return False, None, statistics

            negative_error, positive_error = statistics.errors(z_score)
            negative_error = _symmetrize(negative_error, groups, np.max)
            positive_error = _symmetrize(positive_error, groups, np.max)
            if not errors_are_finite(negative_error, positive_error):
                logger.debug("Non-finite Monte Carlo error after %d samples.",
                             statistics.num_samples)
                return False, None, statistics

            if is_prunable(nodes, negative_error, positive_error, num_pairs,
                           relative_error, total_n_minus_one_num_tuples):
                negative_mean, positive_mean = statistics.means()
                negative_mean = _symmetrize(negative_mean, groups, np.mean)
                positive_mean = _symmetrize(positive_mean, groups, np.mean)
                logger.debug("Monte Carlo pruned after %d samples (%d draws).",
                             statistics.num_samples, num_draws)
                return True, GradientBounds.from_estimates(
                    negative_mean, positive_mean, negative_error, positive_error
                ), statistics

        logger.debug("Monte Carlo gave up after %d samples.", statistics.num_samples)
        return False, None, statistics
