"""
Closure: convert pseudo-counts to proportions.

Each sample is divided by its own total, so rows sum to 1. The operation
is scale invariant: multiplying a sample by any positive constant leaves
its closed composition unchanged.
"""

from __future__ import annotations

import logging

import numpy as np

from simplexmap.core.errors import DomainError
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['Closure', 'closure']

# Relative tolerance on row sums after closure
ROW_SUM_RTOL = 1e-9


def closure(values: np.ndarray) -> np.ndarray:
    """Rescale rows of a positive array to sum to 1."""
    values = np.asarray(values, dtype=np.float64)
    return values / values.sum(axis=1, keepdims=True)


class Closure(Transform):
    """
    Close a PSEUDO_COUNTS table to PROPORTIONS.

    Examples:
        >>> proportions = Closure().apply(pseudo_counts)
        >>> np.allclose(proportions.data.sum(axis=1), 1.0)
        True
    """

    expected_stage = TableStage.PSEUDO_COUNTS

    def __init__(self):
        super().__init__(name="Closure", params={})

    def validate(self, table: AbundanceTable) -> list[str]:
        errors = super().validate(table)
        if not np.all(np.isfinite(table.data)):
            errors.append("Table contains non-finite values")
        return errors

    def apply(self, table: AbundanceTable) -> AbundanceTable:
        """
        Raises:
            DomainError: If any entry is not strictly positive
        """
        self.check(table)

        bad = table.data <= 0
        if bad.any():
            rows, cols = np.nonzero(bad)
            raise DomainError(
                "non-positive pseudo-counts; zero replacement is incomplete",
                stage=self.name,
                samples=table.sample_ids[np.unique(rows)],
                features=table.feature_ids[np.unique(cols)],
            )

        proportions = closure(table.data)

        deviation = np.abs(proportions.sum(axis=1) - 1.0)
        if np.any(deviation > ROW_SUM_RTOL):
            worst = table.sample_ids[np.argmax(deviation)]
            raise DomainError(
                f"row sums deviate from 1 by up to {deviation.max():.2e}",
                stage=self.name,
                samples=[worst],
            )

        logger.info(f"Closed {table.n_samples} samples to proportions")
        return table.with_data(proportions, stage=TableStage.PROPORTIONS)
