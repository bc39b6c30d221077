#!/usr/bin/env python3
"""
multibody.direct

Exact base case of the 3-body force computation.

A triple of individual points is evaluated exactly: the three pairwise
gradients are computed in point mode and each point receives the
contributions of its two incident pairs. ``compute_three_body_forces_direct``
runs the base case over every ``i < j < k`` and is the O(N^3) reference the
tree-accelerated evaluation is validated against.

CAUTION: the direct sum is O(N^3). Keep N to a few hundred points.

Examples
--------
>>> import numpy as np
>>> from multibody.direct import compute_three_body_forces_direct
>>> pos = np.random.default_rng(0).standard_normal((50, 3))
>>> acc = compute_three_body_forces_direct(pos)
>>> forces = acc.assemble_forces(pos)
>>> forces.shape
(50, 3)
"""
from __future__ import annotations

from typing import Sequence

from numba import njit
from numpy.typing import ArrayLike, NDArray

from ._validation import validate_coefficient, validate_points
from .constants import AXILROD_TELLER_COEFF
from .gradients import _point_triple_gradients, _squared_distance
from .statistic import ForceAccumulators

__all__ = ["eval_point_triple", "compute_three_body_forces_direct"]


# ============================================================================
# NUMBA KERNELS
# ============================================================================

@njit(cache=True)
def _force(data, a, b, c,
           negative_gradient1, positive_gradient1,
           negative_gradient2, positive_gradient2,
           negative_force1_e, negative_force1_u,
           positive_force1_l, positive_force1_e,
           negative_force2_e, negative_force2_u,
           positive_force2_l, positive_force2_e):
    """Contributions to point ``a`` from its pairs with ``b`` (gradient 1) and ``c`` (gradient 2)."""
    negative_force1_e[a] += negative_gradient1 + negative_gradient2
    negative_force1_u[a] += negative_gradient1 + negative_gradient2
    positive_force1_l[a] += positive_gradient1 + positive_gradient2
    positive_force1_e[a] += positive_gradient1 + positive_gradient2

    for d in range(data.shape[1]):
        negative_force2_e[a, d] += negative_gradient1 * data[b, d]
        negative_force2_e[a, d] += negative_gradient2 * data[c, d]
        negative_force2_u[a, d] += negative_gradient1 * data[b, d]
        negative_force2_u[a, d] += negative_gradient2 * data[c, d]

        positive_force2_e[a, d] += positive_gradient1 * data[b, d]
        positive_force2_e[a, d] += positive_gradient2 * data[c, d]
        positive_force2_l[a, d] += positive_gradient1 * data[b, d]
        positive_force2_l[a, d] += positive_gradient2 * data[c, d]


@njit(cache=True)
def _accumulate_point_triple(data, i, j, k, coeff,
                             negative_force1_e, negative_force1_u,
                             positive_force1_l, positive_force1_e,
                             negative_force2_e, negative_force2_u,
                             positive_force2_l, positive_force2_e):
    (negative_gradient1, positive_gradient1,
     negative_gradient2, positive_gradient2,
     negative_gradient3, positive_gradient3) = _point_triple_gradients(
        _squared_distance(data, i, j),
        _squared_distance(data, i, k),
        _squared_distance(data, j, k), coeff)

    # Point i: pairs (i, j) and (i, k).
    _force(data, i, j, k,
           negative_gradient1, positive_gradient1,
           negative_gradient2, positive_gradient2,
           negative_force1_e, negative_force1_u, positive_force1_l, positive_force1_e,
           negative_force2_e, negative_force2_u, positive_force2_l, positive_force2_e)

    # Point j: pairs (j, i) and (j, k).
    _force(data, j, i, k,
           negative_gradient1, positive_gradient1,
           negative_gradient3, positive_gradient3,
           negative_force1_e, negative_force1_u, positive_force1_l, positive_force1_e,
           negative_force2_e, negative_force2_u, positive_force2_l, positive_force2_e)

    # Point k: pairs (k, i) and (k, j).
    _force(data, k, i, j,
           negative_gradient2, positive_gradient2,
           negative_gradient3, positive_gradient3,
           negative_force1_e, negative_force1_u, positive_force1_l, positive_force1_e,
           negative_force2_e, negative_force2_u, positive_force2_l, positive_force2_e)


@njit(cache=True)
def _direct_sum(data, coeff,
                negative_force1_e, negative_force1_u,
                positive_force1_l, positive_force1_e,
                negative_force2_e, negative_force2_u,
                positive_force2_l, positive_force2_e):
    n = data.shape[0]
    for i in range(n - 2):
        for j in range(i + 1, n - 1):
            for k in range(j + 1, n):
                _accumulate_point_triple(
                    data, i, j, k, coeff,
                    negative_force1_e, negative_force1_u,
                    positive_force1_l, positive_force1_e,
                    negative_force2_e, negative_force2_u,
                    positive_force2_l, positive_force2_e)


# ============================================================================
# PUBLIC API
# ============================================================================

def eval_point_triple(
    data: NDArray,
    indices: Sequence[int],
    accumulators: ForceAccumulators,
    coefficient: float = AXILROD_TELLER_COEFF,
) -> None:
    """
    Add the exact contributions of one point triple to ``accumulators``.

    Parameters
    ----------
    data : np.ndarray, shape (N, D)
        Point coordinates (float64, C-contiguous).
    indices : sequence of 3 int
        The three points.
    accumulators : ForceAccumulators
        Updated in place.
    coefficient : float, optional
        Axilrod-Teller coefficient.
    """
    i, j, k = indices
    _accumulate_point_triple(data, i, j, k, coefficient, *accumulators.arrays())


def compute_three_body_forces_direct(
    pos: ArrayLike,
    coefficient: float = AXILROD_TELLER_COEFF,
) -> ForceAccumulators:
    """
    Exact Axilrod-Teller force components by direct O(N^3) summation.

    Parameters
    ----------
    pos : array_like, shape (N, D)
        Point coordinates.
    coefficient : float, optional
        Axilrod-Teller coefficient. Default 1e-18.

    Returns
    -------
    ForceAccumulators
        Call ``assemble_forces(pos)`` for the force vectors.
    """
    data = validate_points(pos)
    coefficient = validate_coefficient(coefficient)

    accumulators = ForceAccumulators.zeros(data.shape[0], data.shape[1])
    _direct_sum(data, coefficient, *accumulators.arrays())
    return accumulators

