"""Tests for multibody.pruning: pair counts, prune test and postponed deltas."""

import numpy as np
import pytest
from multibody import AXILROD_TELLER_COEFF, KdNode, MultibodyStat, compute_num_two_tuples
from multibody.errors import finite_difference_errors
from multibody.gradients import GradientBounds, eval_gradients, eval_node_squared_distances
from multibody.pruning import is_prunable, postpone_contributions

C = AXILROD_TELLER_COEFF


# =====================================================================
# Helpers
# =====================================================================
class _CountNode:
    """Bare node carrying only a point count."""

    def __init__(self, count):
        self.count = count


class _Exploding:
    """Statistic stand-in that fails on any attribute access."""

    def __getattr__(self, name):
        raise AssertionError(f"statistic field {name!r} should not be read")


def _separated_nodes(counts=(4, 5, 6), seed=0):
    """Three separated clusters in tree order, with initialised statistics."""
    rng = np.random.default_rng(seed)
    centres = np.array([[1.0, 1.0, 1.0], [6.0, 1.0, 1.0], [1.0, 7.0, 2.0]])
    clusters = [c + 0.4 * rng.random((n, 3)) for c, n in zip(centres, counts)]
    data = np.concatenate(clusters)

    nodes = []
    begin = 0
    for pts in clusters:
        node = KdNode(pts.min(axis=0), pts.max(axis=0), begin, pts.shape[0])
        node.stat.init_from_points(data, begin, pts.shape[0])
        nodes.append(node)
        begin += pts.shape[0]
    return data, nodes


def _seed_magnitude(node, magnitude):
    """Give a node accumulated bounds of the given size."""
    stat = node.stat
    stat.negative_gradient1_u = -magnitude
    stat.positive_gradient1_l = magnitude
    stat.negative_gradient2_u = np.full(stat.dim, -magnitude)
    stat.positive_gradient2_l = np.full(stat.dim, magnitude)


def _errors(nodes):
    bounds = eval_gradients(eval_node_squared_distances(nodes), C)
    return bounds, finite_difference_errors(bounds)


# =====================================================================
# compute_num_two_tuples
# =====================================================================
class TestNumTwoTuples:

    def test_all_equal(self):
        a = _CountNode(4)
        assert compute_num_two_tuples((a, a, a)) == (3.0, 3.0, 3.0)

    def test_first_two_equal(self):
        a, b = _CountNode(4), _CountNode(5)
        assert compute_num_two_tuples((a, a, b)) == (15.0, 15.0, 6.0)

    def test_last_two_equal(self):
        a, b = _CountNode(4), _CountNode(5)
        assert compute_num_two_tuples((a, b, b)) == (10.0, 16.0, 16.0)

    def test_all_distinct(self):
        a, b, c = _CountNode(2), _CountNode(3), _CountNode(4)
        assert compute_num_two_tuples((a, b, c)) == (12.0, 8.0, 6.0)

    @pytest.mark.parametrize("count", [1, 2, 3, 7, 10])
    def test_self_triple_closed_form(self, count):
        a = _CountNode(count)
        expected = (count - 1) * (count - 2) / 2
        assert compute_num_two_tuples((a, a, a)) == (expected,) * 3


# =====================================================================
# is_prunable
# =====================================================================
class TestIsPrunable:

    def test_fresh_statistics_do_not_prune(self):
        _, nodes = _separated_nodes()
        _, (negative_error, positive_error) = _errors(nodes)
        num_pairs = compute_num_two_tuples(nodes)
        assert not is_prunable(nodes, negative_error, positive_error, num_pairs, 0.5, 1.0)

    def test_large_magnitude_prunes(self):
        _, nodes = _separated_nodes()
        for node in nodes:
            _seed_magnitude(node, 1.0)
        _, (negative_error, positive_error) = _errors(nodes)
        num_pairs = compute_num_two_tuples(nodes)
        assert is_prunable(nodes, negative_error, positive_error, num_pairs, 0.5, 1.0)

    def test_monotone_in_relative_error(self):
        _, nodes = _separated_nodes()
        for node in nodes:
            _seed_magnitude(node, 1e-15)
        _, (negative_error, positive_error) = _errors(nodes)
        num_pairs = compute_num_two_tuples(nodes)

        tolerances = np.concatenate([[0.0], np.logspace(-12, 12, 49)])
        results = [is_prunable(nodes, negative_error, positive_error, num_pairs, eps, 1.0)
                   for eps in tolerances]

        assert not results[0]
        assert results[-1]
        first_true = results.index(True)
        assert all(results[first_true:]), "prunability must not flip back to False"

    @pytest.mark.parametrize("field", ["min_negative", "max_negative",
                                       "min_positive", "max_positive"])
    @pytest.mark.parametrize("role", [0, 1, 2])
    def test_nan_injection_never_prunes(self, field, role):
        _, nodes = _separated_nodes()
        for node in nodes:
            _seed_magnitude(node, 1.0)
        bounds, _ = _errors(nodes)
        getattr(bounds, field)[role] = np.nan

        negative_error, positive_error = finite_difference_errors(bounds)
        num_pairs = compute_num_two_tuples(nodes)
        assert not is_prunable(nodes, negative_error, positive_error, num_pairs, 1e30, 1.0)

    def test_short_circuits_after_first_failure(self):
        _, nodes = _separated_nodes()
        _, (negative_error, positive_error) = _errors(nodes)
        num_pairs = compute_num_two_tuples(nodes)
        nodes[2].stat = _Exploding()
        # node 0 fails its first-order test, so node 2 is never looked at
        assert not is_prunable(nodes, negative_error, positive_error, num_pairs, 0.5, 1.0)

    def test_repeated_node_triple_prunes(self):
        _, nodes = _separated_nodes()
        a, b = nodes[0], nodes[1]
        _seed_magnitude(a, 1.0)
        _seed_magnitude(b, 1.0)
        triple = (a, a, b)
        errors = (np.full(3, 1e-30), np.full(3, 1e-30))
        assert is_prunable(triple, *errors, compute_num_two_tuples(triple), 0.5, 1.0)


# =====================================================================
# postpone_contributions
# =====================================================================
class TestPostponeContributions:

    def test_distinct_triple_values(self):
        _, nodes = _separated_nodes()
        bounds, _ = _errors(nodes)
        num_jk, num_ik, num_ij = compute_num_two_tuples(nodes)
        postpone_contributions(nodes, bounds, (num_jk, num_ik, num_ij))

        a, b, c = nodes
        mid_neg = bounds.midpoint_negative()
        mid_pos = bounds.midpoint_positive()

        assert a.stat.postponed_negative_gradient1_u == pytest.approx(
            num_jk * (bounds.max_negative[0] + bounds.max_negative[1]))
        assert b.stat.postponed_positive_gradient1_l == pytest.approx(
            num_ik * (bounds.min_positive[0] + bounds.min_positive[2]))
        assert c.stat.postponed_negative_gradient1_e == pytest.approx(
            num_ij * (mid_neg[1] + mid_neg[2]))

        np.testing.assert_allclose(
            a.stat.postponed_negative_gradient2_e,
            c.count * mid_neg[0] * b.stat.coordinate_sum
            + b.count * mid_neg[1] * c.stat.coordinate_sum)
        np.testing.assert_allclose(
            b.stat.postponed_positive_gradient2_e,
            c.count * mid_pos[0] * a.stat.coordinate_sum
            + a.count * mid_pos[2] * c.stat.coordinate_sum)
        np.testing.assert_allclose(
            c.stat.postponed_positive_gradient2_l,
            b.count * bounds.min_positive[1] * a.stat.coordinate_sum
            + a.count * bounds.min_positive[2] * b.stat.coordinate_sum)

    def test_estimate_lies_within_bounds(self):
        _, nodes = _separated_nodes()
        bounds, _ = _errors(nodes)
        postpone_contributions(nodes, bounds, compute_num_two_tuples(nodes))
        for node in nodes:
            stat = node.stat
            assert stat.postponed_negative_gradient1_e <= stat.postponed_negative_gradient1_u
            assert stat.postponed_positive_gradient1_l <= stat.postponed_positive_gradient1_e

    def test_repeated_node_receives_one_deposit(self):
        _, nodes = _separated_nodes()
        a, b = nodes[0], nodes[1]
        triple = (a, a, b)
        bounds = GradientBounds(np.full(3, -2.0), np.full(3, -1.0),
                                np.full(3, 1.0), np.full(3, 3.0))
        num_pairs = compute_num_two_tuples(triple)
        postpone_contributions(triple, bounds, num_pairs)

        assert a.stat.postponed_negative_gradient1_u == pytest.approx(num_pairs[0] * -2.0)
        assert b.stat.postponed_negative_gradient1_u == pytest.approx(num_pairs[2] * -2.0)

    def test_merge_postponed(self):
        _, nodes = _separated_nodes()
        bounds, _ = _errors(nodes)
        postpone_contributions(nodes, bounds, compute_num_two_tuples(nodes))
        expected = nodes[0].stat.postponed_negative_gradient2_u.copy()

        target = MultibodyStat(3)
        target.merge_postponed(nodes[0].stat)
        target.merge_postponed(nodes[0].stat)
        np.testing.assert_allclose(target.postponed_negative_gradient2_u, 2 * expected)
        assert target.postponed_positive_gradient1_e == pytest.approx(
            2 * nodes[0].stat.postponed_positive_gradient1_e)

        with pytest.raises(ValueError, match="dimension"):
            MultibodyStat(2).merge_postponed(nodes[0].stat)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
