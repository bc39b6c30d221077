#!/usr/bin/env python3
"""
multibody.kernel

Axilrod-Teller force kernel for tree-based 3-body force approximation.

The kernel is driven by an external traversal that walks triples of tree
nodes. For each node triple it answers one question: can the contribution
of every point triple the nodes represent be approximated within the
relative-error tolerance? If so, the aggregate is deposited as postponed
deltas on the nodes and the traversal stops descending. Point triples that
cannot be pruned any further are evaluated exactly.

Per node triple::

    distance bounds -> gradient bounds -> errors -> prune test
        -> postponed contributions (prunable)
        -> Monte Carlo fallback (optional) or "recurse" (not prunable)

Examples
--------
>>> import numpy as np
>>> from multibody import AxilrodTellerForceKernel, build_kdtree
>>> root, data, _ = build_kdtree(np.random.default_rng(1).random((64, 3)))
>>> kernel = AxilrodTellerForceKernel()
>>> left, right = root.children
>>> kernel.eval_nodes(data, (left, left, right), relative_error=0.1,
...                   z_score=1.96, total_n_minus_one_num_tuples=63 * 62 / 2)
False
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ._validation import validate_coefficient, validate_tolerances
from .constants import (
    AXILROD_TELLER_COEFF,
    KERNEL_ORDER,
    MC_BATCH_SIZE,
    MC_MAX_DRAWS_PER_SAMPLE,
    MC_MAX_NUM_SAMPLES,
)
from .direct import eval_point_triple
from .errors import finite_difference_errors
from .gradients import (
    GradientBounds,
    eval_gradients,
    eval_node_squared_distances,
    eval_point_squared_distances,
)
from .pruning import compute_num_two_tuples, is_prunable, postpone_contributions
from .sampling import MonteCarloSampler
from .statistic import ForceAccumulators

__all__ = ["AxilrodTellerForceKernel"]

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("multibody")
    if verbose and not package_logger.hasHandlers():
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        package_logger.addHandler(handler)
    if verbose:
        package_logger.setLevel(logging.DEBUG)


class AxilrodTellerForceKernel:
    """
    Prune test, postponed accumulation and exact base case for triples.

    Parameters
    ----------
    coefficient : float, optional
        The "nu" constant in front of the potential. Default 1e-18.
    batch_size : int, optional
        Monte Carlo samples per round. Default 25.
    max_num_samples : int, optional
        Monte Carlo sample cap per node triple. Default 250.
    max_draws_per_sample : int, optional
        Rejection budget per Monte Carlo sample. Default 100.
    seed : int or np.random.Generator or None, optional
        Seed of the Monte Carlo sampler.
    verbose : bool, optional
        Log decisions at DEBUG level to stderr. Default False.

    Notes
    -----
    The kernel holds no per-triple state; node statistics are the only
    thing it mutates. It is not thread-safe with respect to those.
    """

    def __init__(
        self,
        coefficient: float = AXILROD_TELLER_COEFF,
        *,
        batch_size: int = MC_BATCH_SIZE,
        max_num_samples: int = MC_MAX_NUM_SAMPLES,
        max_draws_per_sample: int = MC_MAX_DRAWS_PER_SAMPLE,
        seed: np.random.Generator | int | None = None,
        verbose: bool = False,
    ):
        self.coefficient = validate_coefficient(coefficient)
        self.sampler = MonteCarloSampler(
            self.coefficient,
            batch_size=batch_size,
            max_num_samples=max_num_samples,
            max_draws_per_sample=max_draws_per_sample,
            rng=seed,
        )
        _configure_logging(verbose)

    @property
    def order(self) -> int:
        """Interaction order of the kernel."""
        return KERNEL_ORDER

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def eval_node_squared_distances(self, nodes: Sequence) -> NDArray:
        return eval_node_squared_distances(nodes)

    def eval_point_squared_distances(self, data: NDArray, indices: Sequence[int]) -> NDArray:
        return eval_point_squared_distances(data, indices)

    def eval_gradients(self, distmat: NDArray, exact: bool = False) -> GradientBounds:
        return eval_gradients(distmat, self.coefficient, exact=exact)

    # ------------------------------------------------------------------
    # Node triples
    # ------------------------------------------------------------------

    def eval_nodes(
        self,
        data: NDArray,
        nodes: Sequence,
        relative_error: float,
        z_score: float,
        total_n_minus_one_num_tuples: float,
        monte_carlo: bool = False,
    ) -> bool:
        """
        Try to prune a triple of tree nodes.

        Parameters
        ----------
        data : np.ndarray, shape (N, D)
            Point coordinates in tree order.
        nodes : sequence of 3 SpatialNode
            The triple; repeated nodes must be adjacent.
        relative_error : float
            Relative-error tolerance.
        z_score : float
            Confidence multiplier for the Monte Carlo fallback.
        total_n_minus_one_num_tuples : float
            Number of (n-1)-tuples of the whole problem.
        monte_carlo : bool, optional
            Fall back to sampling when the interval bounds are too loose.
            Default False.

        Returns
        -------
        bool
            True if the triple was pruned and its contribution postponed on
            the nodes; False if the caller has to recurse.
        """
        relative_error, z_score, total = validate_tolerances(
            relative_error, z_score, total_n_minus_one_num_tuples)

        distmat = self.eval_node_squared_distances(nodes)

        # Overlapping or touching volumes give unbounded gradients.
        if distmat[0, 1] == 0.0 or distmat[0, 2] == 0.0 or distmat[1, 2] == 0.0:
            return False

        bounds = self.eval_gradients(distmat)
        if not bounds.is_finite():
            logger.debug("Non-finite gradient bounds for %s", nodes)
            return False

        negative_error, positive_error = finite_difference_errors(bounds)
        num_pairs = compute_num_two_tuples(nodes)

        if is_prunable(nodes, negative_error, positive_error, num_pairs,
                       relative_error, total):
            postpone_contributions(nodes, bounds, num_pairs)
            return True

        if monte_carlo:
            return self.monte_carlo_eval(data, nodes, relative_error, z_score, total)
        return False

    def monte_carlo_eval(
        self,
        data: NDArray,
        nodes: Sequence,
        relative_error: float,
        z_score: float,
        total_n_minus_one_num_tuples: float,
    ) -> bool:
        """
        Try to prune a triple of tree nodes from sampled point triples.

        The decision holds with the confidence implied by ``z_score``, not
        deterministically. See ``multibody.sampling`` for the stopping rule.
        """
        relative_error, z_score, total = validate_tolerances(
            relative_error, z_score, total_n_minus_one_num_tuples)

        num_pairs = compute_num_two_tuples(nodes)
        prunable, bounds, _ = self.sampler.run(
            data, nodes, num_pairs, relative_error, z_score, total)

        if prunable:
            postpone_contributions(nodes, bounds, num_pairs)
        return prunable

    # ------------------------------------------------------------------
    # Point triples
    # ------------------------------------------------------------------

    def eval_points(
        self,
        data: NDArray,
        indices: Sequence[int],
        accumulators: ForceAccumulators,
    ) -> None:
        """
        Exact contributions of a point triple, added to ``accumulators``.

        Parameters
        ----------
        data : np.ndarray, shape (N, D)
            Point coordinates (float64, C-contiguous).
        indices : sequence of 3 int
            Distinct point indices.
        accumulators : ForceAccumulators
            Updated in place.
        """
        eval_point_triple(data, indices, accumulators, self.coefficient)

    def __repr__(self) -> str:
        return f"AxilrodTellerForceKernel(coefficient={self.coefficient:g})"
