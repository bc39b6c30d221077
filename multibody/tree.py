"""
multibody.tree

Spatial-index interface consumed by the kernel, plus a small kd-tree that
implements it.

The kernel only needs a handful of node capabilities (``SpatialNode``):
bounding-volume distance queries, the contiguous point range the node owns,
its ``MultibodyStat`` and its children. Any tree exposing these works; the
kd-tree below is a minimal reference (hyper-rectangle bounds, median split
along the widest dimension).
"""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ._validation import validate_leaf_size, validate_points
from .statistic import MultibodyStat

__all__ = ["SpatialNode", "KdNode", "build_kdtree"]


@runtime_checkable
class SpatialNode(Protocol):
    """Node capabilities required by ``AxilrodTellerForceKernel``."""

    begin: int
    count: int
    stat: MultibodyStat

    @property
    def children(self) -> Sequence["SpatialNode"]: ...

    def is_leaf(self) -> bool: ...

    def min_distance_sq(self, other: "SpatialNode") -> float: ...

    def max_distance_sq(self, other: "SpatialNode") -> float: ...


class KdNode:
    """
    Kd-tree node owning ``data[begin:begin + count]`` of the permuted data.

    Parameters
    ----------
    lo, hi : np.ndarray, shape (D,)
        Corners of the bounding hyper-rectangle.
    begin, count : int
        Point range owned by the node.
    """

    def __init__(self, lo: NDArray, hi: NDArray, begin: int, count: int):
        self.lo = lo
        self.hi = hi
        self.begin = int(begin)
        self.count = int(count)
        self.left: KdNode | None = None
        self.right: KdNode | None = None
        self.stat = MultibodyStat(lo.shape[0])

    @property
    def end(self) -> int:
        return self.begin + self.count

    @property
    def children(self) -> tuple["KdNode", ...]:
        if self.left is None:
            return ()
        return (self.left, self.right)

    def is_leaf(self) -> bool:
        return self.left is None

    def min_distance_sq(self, other: "KdNode") -> float:
        gap = np.maximum(0.0, np.maximum(other.lo - self.hi, self.lo - other.hi))
        return float(np.dot(gap, gap))

    def max_distance_sq(self, other: "KdNode") -> float:
        span = np.maximum(np.abs(other.hi - self.lo), np.abs(self.hi - other.lo))
        return float(np.dot(span, span))

    def __repr__(self) -> str:
        return f"KdNode(begin={self.begin}, count={self.count}, leaf={self.is_leaf()})"


def _split(data: NDArray, old_from_new: NDArray, node: KdNode, leaf_size: int) -> None:
    if node.count <= leaf_size:
        node.stat.init_from_points(data, node.begin, node.count)
        return

    widths = node.hi - node.lo
    dim = int(np.argmax(widths))
    if widths[dim] <= 0.0:
        # All points coincide; the node cannot be split further.
        node.stat.init_from_points(data, node.begin, node.count)
        return

    sl = slice(node.begin, node.end)
    order = np.argsort(data[sl, dim], kind="stable")
    data[sl] = data[sl][order]
    old_from_new[sl] = old_from_new[sl][order]

    n_left = node.count // 2
    left_pts = data[node.begin:node.begin + n_left]
    right_pts = data[node.begin + n_left:node.end]

    node.left = KdNode(left_pts.min(axis=0), left_pts.max(axis=0),
                       node.begin, n_left)
    node.right = KdNode(right_pts.min(axis=0), right_pts.max(axis=0),
                        node.begin + n_left, node.count - n_left)

    _split(data, old_from_new, node.left, leaf_size)
    _split(data, old_from_new, node.right, leaf_size)
    node.stat.init_from_children(node.left.stat, node.right.stat)


def build_kdtree(
    data: ArrayLike,
    leaf_size: int = 8,
) -> tuple[KdNode, NDArray, NDArray]:
    """
    Build a kd-tree over ``data``.

    Points are reordered so that every node owns a contiguous range.

    Parameters
    ----------
    data : array_like, shape (N, D)
        Point coordinates.
    leaf_size : int, optional
        Maximum number of points in a leaf. Default 8.

    Returns
    -------
    root : KdNode
    data_permuted : np.ndarray, shape (N, D)
        The points in tree order.
    old_from_new : np.ndarray, shape (N,)
        ``data_permuted[i] == data[old_from_new[i]]``.
    """
    data = validate_points(data).copy()
    leaf_size = validate_leaf_size(leaf_size)
    if data.shape[0] == 0:
        raise ValueError("Cannot build a tree over zero points")

    old_from_new = np.arange(data.shape[0])
    root = KdNode(data.min(axis=0), data.max(axis=0), 0, data.shape[0])
    _split(data, old_from_new, root, leaf_size)
    return root, data, old_from_new
