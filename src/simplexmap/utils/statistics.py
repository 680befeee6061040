"""
Shared statistical utilities.

Functions:
    cohens_d: Signed Cohen's d effect size between two groups
"""

from __future__ import annotations

import numpy as np


__all__ = [
    'cohens_d',
]


def cohens_d(
    values: np.ndarray,
    labels: np.ndarray,
) -> float:
    """
    Compute signed Cohen's d effect size between two groups.

    d = (mean(group 1) - mean(group 0)) / pooled SD

    Args:
        values: 1D array of measurements
        labels: 1D array of binary group labels (0/1 or boolean)

    Returns:
        Cohen's d; positive when group 1 has the larger mean.
        NaN if either group has fewer than 2 samples or the pooled
        standard deviation is near zero.

    Interpretation (|d|):
        d < 0.2:  negligible effect
        d = 0.2:  small effect
        d = 0.5:  medium effect
        d = 0.8:  large effect

    Example:
        >>> d = cohens_d(clr_values, group == "treated")

    References:
        Cohen, J. (1988). Statistical Power Analysis for the Behavioral Sciences.
    """
    values = np.asarray(values, dtype=float)
    labels = np.asarray(labels)

    if labels.dtype == bool:
        labels = labels.astype(int)

    g0 = values[labels == 0]
    g1 = values[labels == 1]

    if len(g0) < 2 or len(g1) < 2:
        return float("nan")

    n0, n1 = len(g0), len(g1)
    var0 = np.var(g0, ddof=1)
    var1 = np.var(g1, ddof=1)

    pooled_std = np.sqrt(((n0 - 1) * var0 + (n1 - 1) * var1) / (n0 + n1 - 2))

    if pooled_std < 1e-10:
        return float("nan")

    return float((np.mean(g1) - np.mean(g0)) / pooled_std)
