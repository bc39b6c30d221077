"""Tests for multibody.gradients: distance tables and gradient bounds."""

import numpy as np
import pytest
from multibody import AXILROD_TELLER_COEFF, KdNode
from multibody.errors import finite_difference_errors
from multibody.gradients import (
    GradientBounds,
    eval_gradients,
    eval_node_squared_distances,
    eval_point_squared_distances,
)


# =====================================================================
# Helpers
# =====================================================================
C = AXILROD_TELLER_COEFF
RTOL = 1e-9

COLLINEAR = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])


def _box_node(points, begin=0):
    """Tight bounding-box node around ``points``."""
    return KdNode(points.min(axis=0), points.max(axis=0), begin, points.shape[0])


def _clusters(rng=None, n=6):
    """Three well separated clusters and their nodes."""
    rng = rng or np.random.default_rng(7)
    centres = np.array([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0], [0.0, 6.0, 1.0]])
    clusters = [c + 0.3 * rng.random((n, 3)) for c in centres]
    nodes = [_box_node(pts, begin=i * n) for i, pts in enumerate(clusters)]
    return clusters, nodes


# =====================================================================
# Distance tables
# =====================================================================
class TestSquaredDistances:

    def test_point_table_collinear(self):
        distmat = eval_point_squared_distances(COLLINEAR, (0, 1, 2))
        expected = np.array([[0.0, 1.0, 4.0],
                             [1.0, 0.0, 1.0],
                             [4.0, 1.0, 0.0]])
        np.testing.assert_array_equal(distmat, expected)

    def test_node_table_min_above_max_below(self):
        a = KdNode(np.array([0.0, 0.0]), np.array([1.0, 1.0]), 0, 4)
        b = KdNode(np.array([3.0, 0.0]), np.array([4.0, 1.0]), 4, 4)
        c = KdNode(np.array([0.0, 3.0]), np.array([1.0, 5.0]), 8, 4)
        distmat = eval_node_squared_distances((a, b, c))

        assert distmat[0, 1] == pytest.approx(4.0)     # gap of 2 along x
        assert distmat[1, 0] == pytest.approx(17.0)    # 4^2 + 1^2
        assert distmat[0, 2] == pytest.approx(4.0)     # gap of 2 along y
        assert distmat[2, 0] == pytest.approx(26.0)    # 1^2 + 5^2
        for i in range(3):
            for j in range(i + 1, 3):
                assert distmat[i, j] <= distmat[j, i]

    def test_self_node_has_zero_minimum(self):
        a = KdNode(np.array([0.0, 0.0]), np.array([1.0, 2.0]), 0, 4)
        b = KdNode(np.array([5.0, 0.0]), np.array([6.0, 1.0]), 4, 4)
        distmat = eval_node_squared_distances((a, a, b))
        assert distmat[0, 1] == 0.0
        assert distmat[1, 0] == pytest.approx(5.0)     # box diagonal


# =====================================================================
# Gradient bounds
# =====================================================================
class TestGradientBounds:

    def test_collinear_reference_values(self):
        """Exact gradients of three collinear points at unit spacing."""
        distmat = eval_point_squared_distances(COLLINEAR, (0, 1, 2))
        bounds = eval_gradients(distmat, C, exact=True)

        np.testing.assert_allclose(
            bounds.min_negative, C * np.array([-2.21484375, -0.474609375, -2.21484375]),
            rtol=RTOL)
        np.testing.assert_allclose(
            bounds.min_positive, C * np.array([4.08984375, 0.099609375, 4.08984375]),
            rtol=RTOL)

    def test_exact_mode_has_zero_width(self):
        distmat = eval_point_squared_distances(COLLINEAR, (0, 1, 2))
        bounds = eval_gradients(distmat, C, exact=True)
        np.testing.assert_array_equal(bounds.max_negative, bounds.min_negative)
        np.testing.assert_array_equal(bounds.max_positive, bounds.min_positive)

    def test_degenerate_interval_gives_equal_bounds(self):
        """Equal min/max distances collapse the interval in bound mode too."""
        rng = np.random.default_rng(3)
        pts = rng.random((3, 3)) * 4.0
        distmat = eval_point_squared_distances(pts, (0, 1, 2))
        bounds = eval_gradients(distmat, C, exact=False)

        np.testing.assert_allclose(bounds.max_negative, bounds.min_negative, rtol=1e-15)
        np.testing.assert_allclose(bounds.max_positive, bounds.min_positive, rtol=1e-15)

        negative_error, positive_error = finite_difference_errors(bounds)
        np.testing.assert_allclose(negative_error, 0.0, atol=1e-15 * np.abs(bounds.min_negative).max())
        np.testing.assert_allclose(positive_error, 0.0, atol=1e-15 * np.abs(bounds.min_positive).max())

    def test_bound_mode_matches_exact_mode_on_points(self):
        pts = np.random.default_rng(11).random((3, 3))
        distmat = eval_point_squared_distances(pts, (0, 1, 2))
        exact = eval_gradients(distmat, C, exact=True)
        bounded = eval_gradients(distmat, C, exact=False)
        np.testing.assert_allclose(bounded.min_negative, exact.min_negative, rtol=1e-15)
        np.testing.assert_allclose(bounded.min_positive, exact.min_positive, rtol=1e-15)

    def test_signs(self):
        _, nodes = _clusters()
        bounds = eval_gradients(eval_node_squared_distances(nodes), C)
        assert np.all(bounds.max_negative < 0.0)
        assert np.all(bounds.min_positive > 0.0)
        assert np.all(bounds.min_negative <= bounds.max_negative)
        assert np.all(bounds.min_positive <= bounds.max_positive)

    def test_bounds_contain_every_point_triple(self):
        """Node bounds enclose the exact gradients of all member triples."""
        clusters, nodes = _clusters()
        bounds = eval_gradients(eval_node_squared_distances(nodes), C)
        data = np.concatenate(clusters)
        n = clusters[0].shape[0]

        slack = 1e-12
        for i in range(n):
            for j in range(n, 2 * n):
                for k in range(2 * n, 3 * n):
                    distmat = eval_point_squared_distances(data, (i, j, k))
                    g = eval_gradients(distmat, C, exact=True)
                    assert np.all(g.min_negative >= bounds.min_negative * (1 + slack))
                    assert np.all(g.min_negative <= bounds.max_negative * (1 - slack))
                    assert np.all(g.min_positive >= bounds.min_positive * (1 - slack))
                    assert np.all(g.min_positive <= bounds.max_positive * (1 + slack))

    def test_zero_distance_is_not_finite(self):
        distmat = np.array([[0.0, 0.0, 4.0],
                            [1.0, 0.0, 1.0],
                            [9.0, 4.0, 0.0]])
        bounds = eval_gradients(distmat, C)
        assert not bounds.is_finite()

    def test_from_estimates(self):
        mean = np.array([-1.0, -2.0, -3.0])
        err = np.array([0.1, 0.2, 0.3])
        bounds = GradientBounds.from_estimates(mean, -mean, err, err)
        np.testing.assert_allclose(bounds.midpoint_negative(), mean)
        np.testing.assert_allclose(bounds.max_negative - bounds.min_negative, 2 * err)
        assert bounds.is_finite()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
