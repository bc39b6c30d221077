"""
multibody._validation
=====================

Shared input-validation helpers used by the kernel and the tree.

All validators raise ``ValueError`` on invalid input and return sanitised
values ready for downstream computation.
"""
from __future__ import annotations

import math

import numpy as np

__all__: list[str] = []  # internal helpers only


# ---------------------------------------------------------------------------
# Point data
# ---------------------------------------------------------------------------

def validate_points(data) -> np.ndarray:
    """Validate a point matrix.

    Parameters
    ----------
    data : array_like, shape (N, D)
        Point coordinates, one row per point.

    Returns
    -------
    data : np.ndarray
        The validated array as C-contiguous ``float64``.
    """
    data = np.ascontiguousarray(data, dtype=np.float64)
    if data.ndim != 2 or data.shape[1] < 1:
        raise ValueError(f"data must have shape (N, D), got {data.shape}")
    return data


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

def validate_coefficient(coefficient: float) -> float:
    coefficient = float(coefficient)
    if not math.isfinite(coefficient) or coefficient <= 0.0:
        raise ValueError(
            f"coefficient must be a finite positive number, got {coefficient}"
        )
    return coefficient


def validate_tolerances(
    relative_error: float,
    z_score: float,
    total_n_minus_one_num_tuples: float,
) -> tuple[float, float, float]:
    """Validate the per-call approximation parameters."""
    relative_error = float(relative_error)
    z_score = float(z_score)
    total = float(total_n_minus_one_num_tuples)

    if not relative_error >= 0.0:
        raise ValueError(f"relative_error must be non-negative, got {relative_error}")
    if not z_score > 0.0:
        raise ValueError(f"z_score must be positive, got {z_score}")
    if not total > 0.0:
        raise ValueError(
            f"total_n_minus_one_num_tuples must be positive, got {total}"
        )
    return relative_error, z_score, total


def validate_sampling(
    batch_size: int,
    max_num_samples: int,
    max_draws_per_sample: int,
) -> tuple[int, int, int]:
    """Validate Monte Carlo budget settings."""
    batch_size = int(batch_size)
    max_num_samples = int(max_num_samples)
    max_draws_per_sample = int(max_draws_per_sample)

    if batch_size < 2:
        raise ValueError(f"batch_size must be at least 2, got {batch_size}")
    if max_num_samples < batch_size:
        raise ValueError(
            f"max_num_samples ({max_num_samples}) must be at least "
            f"batch_size ({batch_size})"
        )
    if max_draws_per_sample < 1:
        raise ValueError(
            f"max_draws_per_sample must be at least 1, got {max_draws_per_sample}"
        )
    return batch_size, max_num_samples, max_draws_per_sample


def validate_leaf_size(leaf_size: int) -> int:
    leaf_size = int(leaf_size)
    if leaf_size < 1:
        raise ValueError(f"leaf_size must be at least 1, got {leaf_size}")
    return leaf_size
