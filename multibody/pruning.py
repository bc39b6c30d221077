"""
multibody.pruning

Prune test and postponed contributions for a triple of tree nodes.

A triple is prunable when every distinct node in it can absorb the
approximation error of its two incident pairwise roles within its share of
the relative-error budget. When it is, each distinct node receives the
aggregate contribution of all point triples the three nodes represent as
postponed deltas on its ``MultibodyStat``.

Nodes are compared by identity. Repeated nodes are expected to be adjacent
in the triple (``(A, A, B)``, ``(A, B, B)``, ``(A, A, A)``), which is the
order a canonical triple traversal produces.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy import special

from .gradients import GradientBounds

__all__ = [
    "compute_num_two_tuples",
    "is_prunable",
    "postpone_contributions",
]

# For each node position: its two incident roles as (role, partner, third),
# where ``partner`` is the other end of the pair and ``third`` the remaining node.
_NODE_ROLES = (
    ((0, 1, 2), (1, 2, 1)),
    ((0, 0, 2), (2, 2, 0)),
    ((1, 0, 1), (2, 1, 0)),
)


def _binomial2(n: int) -> float:
    return float(special.comb(n, 2, exact=True))


def _distinct_positions(nodes: Sequence) -> list[int]:
    """Positions whose node differs from the preceding one."""
    positions = [0]
    if nodes[1] is not nodes[0]:
        positions.append(1)
    if nodes[2] is not nodes[1]:
        positions.append(2)
    return positions


def compute_num_two_tuples(nodes: Sequence) -> tuple[float, float, float]:
    """
    Number of point pairs formed by the two nodes other than each node.

    Returns
    -------
    num_jk_pairs, num_ik_pairs, num_ij_pairs : float
        Pairs drawn from (node 1, node 2), (node 0, node 2) and
        (node 0, node 1) respectively, excluding the point of the node the
        count is taken for when the nodes coincide.
    """
    if nodes[0] is nodes[1]:
        if nodes[1] is nodes[2]:
            # All three nodes are equal.
            num_jk_pairs = _binomial2(nodes[0].count - 1)
            num_ik_pairs = num_jk_pairs
            num_ij_pairs = num_jk_pairs
        else:
            num_jk_pairs = float((nodes[0].count - 1) * nodes[2].count)
            num_ik_pairs = num_jk_pairs
            num_ij_pairs = _binomial2(nodes[0].count)
    else:
        if nodes[1] is nodes[2]:
            num_jk_pairs = _binomial2(nodes[1].count)
            num_ik_pairs = float(nodes[0].count * (nodes[2].count - 1))
            num_ij_pairs = float(nodes[0].count * (nodes[1].count - 1))
        else:
            # All three nodes are disjoint.
            num_jk_pairs = float(nodes[1].count * nodes[2].count)
            num_ik_pairs = float(nodes[0].count * nodes[2].count)
            num_ij_pairs = float(nodes[0].count * nodes[1].count)

    return num_jk_pairs, num_ik_pairs, num_ij_pairs


def _l1(v: NDArray) -> float:
    return float(np.abs(v).sum())


def _node_prunable(
    nodes: Sequence,
    position: int,
    negative_error: NDArray,
    positive_error: NDArray,
    num_pairs: float,
    tau: float,
) -> bool:
    stat = nodes[position].stat
    (r, p_r, q_r), (s, p_s, q_s) = _NODE_ROLES[position]

    # First-order components.
    if not (negative_error[r] + negative_error[s]
            <= tau * abs(stat.negative_gradient1_u + stat.postponed_negative_gradient1_u)):
        return False
    if not (positive_error[r] + positive_error[s]
            <= tau * (stat.positive_gradient1_l + stat.postponed_positive_gradient1_l)):
        return False

    # Second-order components, weighted by how often each partner appears.
    weight_r = nodes[q_r].count * nodes[p_r].stat.l1_norm_coordinate_sum
    weight_s = nodes[q_s].count * nodes[p_s].stat.l1_norm_coordinate_sum

    if not (weight_r * negative_error[r] + weight_s * negative_error[s]
            <= tau * num_pairs * (_l1(stat.negative_gradient2_u)
                                  + _l1(stat.postponed_negative_gradient2_u))):
        return False
    return (weight_r * positive_error[r] + weight_s * positive_error[s]
            <= tau * num_pairs * (_l1(stat.positive_gradient2_l)
                                  + _l1(stat.postponed_positive_gradient2_l)))


def is_prunable(
    nodes: Sequence,
    negative_error: NDArray,
    positive_error: NDArray,
    num_pairs: tuple[float, float, float],
    relative_error: float,
    total_n_minus_one_num_tuples: float,
) -> bool:
    """
    Relative-error prune test over every distinct node of the triple.

    Nodes are tested in order and the test stops at the first failure; a
    node equal to its predecessor inherits the predecessor's result. Any
    NaN in the errors fails every comparison, so the triple is not
    prunable.

    Parameters
    ----------
    nodes : sequence of 3 SpatialNode
    negative_error, positive_error : np.ndarray, shape (3,)
        Per-role errors from ``multibody.errors``.
    num_pairs : tuple of 3 float
        Output of ``compute_num_two_tuples``.
    relative_error : float
        User tolerance.
    total_n_minus_one_num_tuples : float
        Number of (n-1)-tuples in the whole problem.

    Returns
    -------
    bool
    """
    tau = relative_error / float(total_n_minus_one_num_tuples)
    for position in _distinct_positions(nodes):
        if not _node_prunable(nodes, position, negative_error, positive_error,
                              num_pairs[position], tau):
            return False
    return True


def postpone_contributions(
    nodes: Sequence,
    bounds: GradientBounds,
    num_pairs: tuple[float, float, float],
) -> None:
    """
    Deposit the aggregate contribution of the triple on each distinct node.

    First-order deltas are the per-role bounds weighted by the pair count of
    the other two nodes; second-order deltas are the bounds weighted by the
    third node's count and projected onto the partner's coordinate sum.
    """
    mid_negative = bounds.midpoint_negative()
    mid_positive = bounds.midpoint_positive()

    for position in _distinct_positions(nodes):
        stat = nodes[position].stat
        num = num_pairs[position]
        (r, p_r, q_r), (s, p_s, q_s) = _NODE_ROLES[position]

        stat.postponed_negative_gradient1_e += num * (mid_negative[r] + mid_negative[s])
        stat.postponed_negative_gradient1_u += num * (bounds.max_negative[r]
                                                      + bounds.max_negative[s])
        stat.postponed_positive_gradient1_l += num * (bounds.min_positive[r]
                                                      + bounds.min_positive[s])
        stat.postponed_positive_gradient1_e += num * (mid_positive[r] + mid_positive[s])

        count_r = nodes[q_r].count
        count_s = nodes[q_s].count
        sum_r = nodes[p_r].stat.coordinate_sum
        sum_s = nodes[p_s].stat.coordinate_sum

        stat.postponed_negative_gradient2_e += (count_r * mid_negative[r] * sum_r
                                                + count_s * mid_negative[s] * sum_s)
        stat.postponed_negative_gradient2_u += (count_r * bounds.max_negative[r] * sum_r
                                                + count_s * bounds.max_negative[s] * sum_s)
        stat.postponed_positive_gradient2_l += (count_r * bounds.min_positive[r] * sum_r
                                                + count_s * bounds.min_positive[s] * sum_s)
        stat.postponed_positive_gradient2_e += (count_r * mid_positive[r] * sum_r
                                                + count_s * mid_positive[s] * sum_s)
