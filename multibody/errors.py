"""
multibody.errors

Approximation error of the gradient components.

Two estimators, both returning one non-negative error per pairwise role for
the negative and the positive component:

* finite difference: half-width of the deterministic interval;
* Monte Carlo: ``z`` times the unbiased sample standard deviation.
"""
from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from .gradients import GradientBounds

__all__ = [
    "finite_difference_errors",
    "monte_carlo_errors",
    "errors_are_finite",
    "confidence_to_z_score",
]


def finite_difference_errors(bounds: GradientBounds) -> tuple[NDArray, NDArray]:
    """
    Half-width of the gradient intervals.

    Returns
    -------
    negative_error, positive_error : np.ndarray, shape (3,)
    """
    negative_error = (bounds.max_negative - bounds.min_negative) * 0.5
    positive_error = (bounds.max_positive - bounds.min_positive) * 0.5
    return negative_error, positive_error


def monte_carlo_errors(
    sums: NDArray,
    squared_sums: NDArray,
    num_samples: int,
    z_score: float,
) -> NDArray:
    """
    Confidence-interval half-width from running sums.

    The variance is the unbiased sample variance of the sampled values (not
    the variance of their mean):

    .. math::

        s^2 = \\frac{\\sum x^2 - (\\sum x)^2 / n}{n - 1}

    Parameters
    ----------
    sums, squared_sums : np.ndarray
        Running sums of the samples and of their squares (any shape).
    num_samples : int
        Number of samples folded into the sums; at least 2.
    z_score : float
        Confidence multiplier.

    Returns
    -------
    errors : np.ndarray
        ``z * s``, same shape as ``sums``.
    """
    if num_samples < 2:
        raise ValueError(f"At least 2 samples are needed, got {num_samples}")

    sums = np.asarray(sums, dtype=np.float64)
    squared_sums = np.asarray(squared_sums, dtype=np.float64)
    variance = (squared_sums - sums * sums / num_samples) / (num_samples - 1.0)

    # Cancellation can push a zero variance slightly below zero.
    variance = np.where(variance < 0.0, 0.0, variance)
    return z_score * np.sqrt(variance)


def errors_are_finite(*errors: NDArray) -> bool:
    """True if every entry of every error array is finite."""
    return all(bool(np.isfinite(err).all()) for err in errors)


def confidence_to_z_score(confidence: float) -> float:
    """
    Two-sided z-score for a confidence level.

    >>> round(confidence_to_z_score(0.95), 4)
    1.96
    """
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must lie in (0, 1), got {confidence}")
    return float(stats.norm.ppf(0.5 + 0.5 * confidence))
