"""
Quality flag system for tracking per-value provenance through the pipeline.

Every value in an AbundanceTable carries an integer flag. Flags record what
happened to the value on its way from the raw count table to log-ratio space,
which answers questions like "how many cells were pseudo-counts?" or "which
CLR coordinates come from a feature that was mostly zeros?".

Engineering Design:
    IntFlag enables efficient bitwise operations:
    - Multiple flags per value: MISSING_ORIGINAL | ZERO_REPLACED
    - Fast bitwise checks: if flags & QualityFlag.ZERO_REPLACED
    - Memory efficient: single int per value
    - Flags travel with the value through closure, filtering and CLR

Examples:
    >>> import numpy as np
    >>> from simplexmap.core.quality import QualityFlag
    >>>
    >>> # A missing count that was coerced to zero and then replaced
    >>> flag = QualityFlag.MISSING_ORIGINAL | QualityFlag.ZERO_REPLACED
    >>> bool(flag & QualityFlag.ZERO_REPLACED)
    True
    >>>
    >>> # Count replaced values in an array of flags
    >>> flags = np.array([0, 2, 6, 0], dtype=int)
    >>> int(np.sum(flags & QualityFlag.ZERO_REPLACED != 0))
    2
"""

from __future__ import annotations

from enum import IntFlag

__all__ = ['QualityFlag']


class QualityFlag(IntFlag):
    """
    Bitwise flags for per-value quality tracking in abundance tables.

    Attributes:
        ORIGINAL: Untouched value from the raw table (0)
        MISSING_ORIGINAL: Missing (NA) in the raw table, coerced to zero (1)
        ZERO_REPLACED: Zero count substituted by a pseudo-count (2)
        SPARSE_FEATURE: Value belongs to a feature whose zero fraction exceeded
            the tolerable threshold for replacement (4)
    """

    ORIGINAL = 0
    """Untouched original value."""

    MISSING_ORIGINAL = 1
    """Missing in raw data; treated as a zero count by the explicit NA step."""

    ZERO_REPLACED = 2
    """
    Zero count replaced with a pseudo-count.
    Pseudo-counts are model values, not observations; log-ratios built on
    them inherit the replacement model's assumptions.
    """

    SPARSE_FEATURE = 4
    """
    Feature exceeded the tolerable zero fraction.
    Replacement on near-total sparsity is statistically unreliable.
    """
