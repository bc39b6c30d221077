"""
multibody.statistic

Per-node statistics and per-point force accumulators.

``MultibodyStat`` lives on every tree node. The pruning step reads its
accumulated bounds and appends to its ``postponed_*`` fields; pushing the
postponed deltas down the tree is left to the traversal that owns the tree.

``ForceAccumulators`` holds the per-point result of the exact base case.
The 3-body force on point ``i`` is split into a first-order part (a scalar
that multiplies ``x_i``) and a second-order part (a vector that already
carries the partner coordinates). Together they give the potential
gradient at ``x_i``; the force is its negative:

    F_i = (n2[i] + p2[i]) - (n1[i] + p1[i]) * x_i

where ``n`` / ``p`` are the negative and positive gradient components.
"""
from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

__all__ = ["MultibodyStat", "ForceAccumulators"]


class MultibodyStat:
    """
    Gradient bounds and postponed contributions of one tree node.

    Suffixes follow the bound kind: ``_l`` lower bound, ``_u`` upper bound,
    ``_e`` point estimate. Gradient "1" fields are scalars (first-order
    component), gradient "2" fields are vectors of length ``dim``
    (second-order component).

    Parameters
    ----------
    dim : int
        Dimension of the point space.
    """

    _SCALAR_FIELDS = (
        "negative_gradient1_e",
        "negative_gradient1_u",
        "positive_gradient1_l",
        "positive_gradient1_e",
    )
    _VECTOR_FIELDS = (
        "negative_gradient2_e",
        "negative_gradient2_u",
        "positive_gradient2_l",
        "positive_gradient2_e",
    )

    def __init__(self, dim: int):
        self.dim = int(dim)

        for name in self._SCALAR_FIELDS:
            setattr(self, name, 0.0)
        for name in self._VECTOR_FIELDS:
            setattr(self, name, np.zeros(self.dim))

        self.coordinate_sum = np.zeros(self.dim)
        self.l1_norm_coordinate_sum = 0.0
        self.reset_postponed()

    def reset_postponed(self) -> None:
        """Zero every postponed delta."""
        for name in self._SCALAR_FIELDS:
            setattr(self, "postponed_" + name, 0.0)
        for name in self._VECTOR_FIELDS:
            setattr(self, "postponed_" + name, np.zeros(self.dim))

    def init_from_points(self, data: NDArray, begin: int, count: int) -> None:
        """Compute the coordinate sum of ``data[begin:begin + count]``."""
        self.coordinate_sum = data[begin:begin + count].sum(axis=0)
        self.l1_norm_coordinate_sum = float(np.abs(self.coordinate_sum).sum())

    def init_from_children(self, left: "MultibodyStat", right: "MultibodyStat") -> None:
        """Combine the coordinate sums of two child statistics."""
        self.coordinate_sum = left.coordinate_sum + right.coordinate_sum
        self.l1_norm_coordinate_sum = float(np.abs(self.coordinate_sum).sum())

    def merge_postponed(self, other: "MultibodyStat") -> None:
        """
        Add the postponed deltas of ``other`` into this statistic.

        A traversal that works on several node triples concurrently can let
        each worker accumulate into a private copy and merge the copies
        afterwards, so no two workers ever write the same statistic.
        """
        if other.dim != self.dim:
            raise ValueError(
                f"Cannot merge statistics of dimension {other.dim} into {self.dim}"
            )
        for name in self._SCALAR_FIELDS:
            key = "postponed_" + name
            setattr(self, key, getattr(self, key) + getattr(other, key))
        for name in self._VECTOR_FIELDS:
            key = "postponed_" + name
            getattr(self, key)[:] += getattr(other, key)

    def __repr__(self) -> str:
        return (
            f"MultibodyStat(dim={self.dim}, "
            f"l1_norm_coordinate_sum={self.l1_norm_coordinate_sum:.6g})"
        )


class ForceAccumulators:
    """
    Per-point force components filled by the exact base case.

    Parameters
    ----------
    n_points : int
        Number of points.
    dim : int
        Dimension of the point space.
    """

    FIRST_ORDER = (
        "negative_force1_e",
        "negative_force1_u",
        "positive_force1_l",
        "positive_force1_e",
    )
    SECOND_ORDER = (
        "negative_force2_e",
        "negative_force2_u",
        "positive_force2_l",
        "positive_force2_e",
    )

    def __init__(self, n_points: int, dim: int):
        self.n_points = int(n_points)
        self.dim = int(dim)
        for name in self.FIRST_ORDER:
            setattr(self, name, np.zeros(self.n_points))
        for name in self.SECOND_ORDER:
            setattr(self, name, np.zeros((self.n_points, self.dim)))

    @classmethod
    def zeros(cls, n_points: int, dim: int) -> "ForceAccumulators":
        return cls(n_points, dim)

    def arrays(self) -> tuple[NDArray, ...]:
        """All eight arrays, first-order then second-order."""
        return tuple(getattr(self, name) for name in self.FIRST_ORDER + self.SECOND_ORDER)

    def assemble_forces(self, data: NDArray) -> NDArray:
        """
        Combine the estimate components into force vectors, ``-grad u``.

        Parameters
        ----------
        data : np.ndarray, shape (N, D)
            The point coordinates the accumulators were filled from.

        Returns
        -------
        forces : np.ndarray, shape (N, D)
        """
        first = self.negative_force1_e + self.positive_force1_e
        second = self.negative_force2_e + self.positive_force2_e
        return second - first[:, np.newaxis] * data
