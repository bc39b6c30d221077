#!/usr/bin/env python3
"""
multibody.gradients

Distance and gradient bounds for the Axilrod-Teller 3-body potential.

For a triple of entities (tree nodes or points) the pairwise squared
distances are first bounded in a 3x3 table, then turned into bounds on the
three pairwise gradient magnitudes that compose the 3-body force.

Distance table layout
---------------------
``distmat[i, j]`` with ``i < j`` holds the minimum squared distance between
entity ``i`` and entity ``j``; ``distmat[j, i]`` holds the maximum. For point
triples both halves hold the exact value.

Gradient roles
--------------
Role 0 bounds the pair (0, 1), role 1 the pair (0, 2) and role 2 the pair
(1, 2). For the pair (a, b) with third entity c, d1 = |a - b|,
d2 = |a - c| and d3 = |b - c|. Every term of the negative component grows
(towards zero) with every distance, so its minimum is taken at the minimum
distances. The positive component grows with d2 (resp. d3) in the numerators
and shrinks with the denominators, which is why its minimum pairs minimum
numerator distances with maximum denominator distances.

Scalar kernels are compiled with numba. They use the numpy error model so a
zero distance yields inf/nan instead of raising; callers check finiteness.
"""
from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .constants import ROLE_ORDERS

__all__ = [
    "GradientBounds",
    "eval_node_squared_distances",
    "eval_point_squared_distances",
    "eval_gradients",
]


# ============================================================================
# NUMBA SCALAR KERNELS
# ============================================================================

@njit(cache=True, error_model="numpy")
def _negative_sum(dsqd1: float, dsqd2: float, dsqd3: float) -> float:
    """Bracketed sum of the negative gradient component."""
    dist2 = math.sqrt(dsqd2)
    dist3 = math.sqrt(dsqd3)
    dqrt1 = dsqd1 * dsqd1
    dsix1 = dsqd1 * dqrt1
    dcub2 = dsqd2 * dist2
    dqui2 = dsqd2 * dcub2
    dcub3 = dsqd3 * dist3
    dqui3 = dsqd3 * dcub3

    return (-8.0 / (dqrt1 * dcub2 * dcub3)
            - 1.0 / (dqui2 * dqui3)
            - 1.0 / (dsqd1 * dcub2 * dqui3)
            - 1.0 / (dsqd1 * dqui2 * dcub3)
            - 3.0 / (dqrt1 * dist2 * dqui3)
            - 3.0 / (dqrt1 * dqui2 * dist3)
            - 5.0 / (dsix1 * dist2 * dcub3)
            - 5.0 / (dsix1 * dcub2 * dist3))


@njit(cache=True, error_model="numpy")
def _positive_sum(num_dsqd2: float, num_dsqd3: float,
                  dsqd1: float, dsqd2: float, dsqd3: float) -> float:
    """
    Bracketed sum of the positive gradient component.

    ``num_dsqd2`` / ``num_dsqd3`` feed the numerators, the remaining squared
    distances feed the denominators.
    """
    dist2 = math.sqrt(dsqd2)
    dist3 = math.sqrt(dsqd3)
    dqrt1 = dsqd1 * dsqd1
    dsix1 = dsqd1 * dqrt1
    dcub2 = dsqd2 * dist2
    dqui2 = dsqd2 * dcub2
    dcub3 = dsqd3 * dist3
    dqui3 = dsqd3 * dcub3

    return (5.0 * math.sqrt(num_dsqd2) / (dsix1 * dqui3)
            + 5.0 * math.sqrt(num_dsqd3) / (dsix1 * dqui2)
            + 6.0 / (dqrt1 * dcub2 * dcub3))


@njit(cache=True, error_model="numpy")
def _pair_gradient_bounds(min_dsqd1: float, max_dsqd1: float,
                          min_dsqd2: float, max_dsqd2: float,
                          min_dsqd3: float, max_dsqd3: float,
                          coeff: float):
    """(min_negative, max_negative, min_positive, max_positive) for one role."""
    min_common_factor = 3.0 * coeff / (8.0 * math.sqrt(max_dsqd1))
    max_common_factor = 3.0 * coeff / (8.0 * math.sqrt(min_dsqd1))

    min_negative = max_common_factor * _negative_sum(min_dsqd1, min_dsqd2, min_dsqd3)
    max_negative = min_common_factor * _negative_sum(max_dsqd1, max_dsqd2, max_dsqd3)
    min_positive = min_common_factor * _positive_sum(
        min_dsqd2, min_dsqd3, max_dsqd1, max_dsqd2, max_dsqd3)
    max_positive = max_common_factor * _positive_sum(
        max_dsqd2, max_dsqd3, min_dsqd1, min_dsqd2, min_dsqd3)
    return min_negative, max_negative, min_positive, max_positive


@njit(cache=True, error_model="numpy")
def _pair_gradient_exact(dsqd1: float, dsqd2: float, dsqd3: float, coeff: float):
    """(negative, positive) gradient components of one pair of a point triple."""
    common_factor = 3.0 * coeff / (8.0 * math.sqrt(dsqd1))
    negative = common_factor * _negative_sum(dsqd1, dsqd2, dsqd3)
    positive = common_factor * _positive_sum(dsqd2, dsqd3, dsqd1, dsqd2, dsqd3)
    return negative, positive


@njit(cache=True, error_model="numpy")
def _point_triple_gradients(dsqd01: float, dsqd02: float, dsqd12: float,
                            coeff: float):
    """Exact (negative, positive) components for the three roles of a point triple."""
    negative1, positive1 = _pair_gradient_exact(dsqd01, dsqd02, dsqd12, coeff)
    negative2, positive2 = _pair_gradient_exact(dsqd02, dsqd01, dsqd12, coeff)
    negative3, positive3 = _pair_gradient_exact(dsqd12, dsqd02, dsqd01, coeff)
    return negative1, positive1, negative2, positive2, negative3, positive3


@njit(cache=True)
def _squared_distance(data: np.ndarray, i: int, j: int) -> float:
    total = 0.0
    for d in range(data.shape[1]):
        diff = data[i, d] - data[j, d]
        total += diff * diff
    return total


# ============================================================================
# GRADIENT BOUNDS CONTAINER
# ============================================================================

class GradientBounds:
    """
    Min/max bounds of the negative and positive gradient components.

    Each attribute is a ``(3,)`` array indexed by pairwise role.
    """

    __slots__ = ("min_negative", "max_negative", "min_positive", "max_positive")

    def __init__(self, min_negative: NDArray, max_negative: NDArray,
                 min_positive: NDArray, max_positive: NDArray):
        self.min_negative = np.asarray(min_negative, dtype=np.float64)
        self.max_negative = np.asarray(max_negative, dtype=np.float64)
        self.min_positive = np.asarray(min_positive, dtype=np.float64)
        self.max_positive = np.asarray(max_positive, dtype=np.float64)

    @classmethod
    def from_estimates(cls, negative: NDArray, positive: NDArray,
                       negative_error: NDArray, positive_error: NDArray) -> "GradientBounds":
        """Symmetric bounds ``estimate ± error`` around point estimates."""
        return cls(negative - negative_error, negative + negative_error,
                   positive - positive_error, positive + positive_error)

    def is_finite(self) -> bool:
        return bool(
            np.isfinite(self.min_negative).all()
            and np.isfinite(self.max_negative).all()
            and np.isfinite(self.min_positive).all()
            and np.isfinite(self.max_positive).all()
        )

    def midpoint_negative(self) -> NDArray:
        return 0.5 * (self.min_negative + self.max_negative)

    def midpoint_positive(self) -> NDArray:
        return 0.5 * (self.min_positive + self.max_positive)

    def __repr__(self) -> str:
        return (
            f"GradientBounds(negative=[{self.min_negative}, {self.max_negative}], "
            f"positive=[{self.min_positive}, {self.max_positive}])"
        )


# ============================================================================
# PUBLIC API
# ============================================================================

def eval_node_squared_distances(nodes: Sequence) -> NDArray:
    """
    Bound the pairwise squared distances among three tree nodes.

    Parameters
    ----------
    nodes : sequence of 3 SpatialNode

    Returns
    -------
    distmat : np.ndarray, shape (3, 3)
        Minimum above the diagonal, maximum below it.
    """
    distmat = np.zeros((3, 3))
    for i in range(2):
        for j in range(i + 1, 3):
            distmat[i, j] = nodes[i].min_distance_sq(nodes[j])
            distmat[j, i] = nodes[i].max_distance_sq(nodes[j])
    return distmat


def eval_point_squared_distances(data: NDArray, indices: Sequence[int]) -> NDArray:
    """
    Exact pairwise squared distances among three points.

    Parameters
    ----------
    data : np.ndarray, shape (N, D)
    indices : sequence of 3 int

    Returns
    -------
    distmat : np.ndarray, shape (3, 3)
        Symmetric table of squared distances.
    """
    distmat = np.zeros((3, 3))
    for i in range(2):
        for j in range(i + 1, 3):
            dsqd = _squared_distance(data, indices[i], indices[j])
            distmat[i, j] = dsqd
            distmat[j, i] = dsqd
    return distmat


def _min_max(distmat: NDArray, a: int, b: int) -> tuple[float, float]:
    lo, hi = min(a, b), max(a, b)
    return distmat[lo, hi], distmat[hi, lo]


def eval_gradients(distmat: NDArray, coefficient: float,
                   exact: bool = False) -> GradientBounds:
    """
    Bound the gradient components of the three pairwise roles.

    Parameters
    ----------
    distmat : np.ndarray, shape (3, 3)
        Squared-distance table from ``eval_*_squared_distances``.
    coefficient : float
        Axilrod-Teller coefficient.
    exact : bool, optional
        Point-triple mode: only the minimum side is evaluated and the
        maximum is set equal to it. Default False.

    Returns
    -------
    GradientBounds
    """
    min_negative = np.empty(3)
    max_negative = np.empty(3)
    min_positive = np.empty(3)
    max_positive = np.empty(3)

    for role, (a, b, c) in enumerate(ROLE_ORDERS):
        min_d1, max_d1 = _min_max(distmat, a, b)
        min_d2, max_d2 = _min_max(distmat, a, c)
        min_d3, max_d3 = _min_max(distmat, b, c)

        if exact:
            negative, positive = _pair_gradient_exact(min_d1, min_d2, min_d3, coefficient)
            min_negative[role] = max_negative[role] = negative
            min_positive[role] = max_positive[role] = positive
        else:
            (min_negative[role], max_negative[role],
             min_positive[role], max_positive[role]) = _pair_gradient_bounds(
                min_d1, max_d1, min_d2, max_d2, min_d3, max_d3, coefficient)

    return GradientBounds(min_negative, max_negative, min_positive, max_positive)
