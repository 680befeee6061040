"""
Centered log-ratio (CLR) transform.

For a composition p with D parts:

    clr(p)_i = log(p_i) - mean_j log(p_j)

CLR maps the interior of the simplex onto the hyperplane of R^D orthogonal
to the all-ones vector, so every row of the output sums to zero. Euclidean
distance between CLR rows is the Aitchison distance between the original
compositions. CLR is scale invariant, so the filtered (no longer closed)
proportions give the same coordinates as their re-closed version.

References:
    Aitchison (1986). The Statistical Analysis of Compositional Data.
"""

from __future__ import annotations

import logging

import numpy as np

from simplexmap.core.errors import DomainError
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['CLRTransform', 'clr', 'clr_inverse']

# Row-sum tolerance: absolute floor, widened by the rounding bound of the row
ROW_SUM_ATOL = 1e-9
ROW_SUM_EPS_FACTOR = 4


def clr(values: np.ndarray) -> np.ndarray:
    """
    CLR of each row of a strictly positive array.

    Raises:
        DomainError: If any entry is not strictly positive and finite
    """
    values = np.asarray(values, dtype=np.float64)
    if not np.all(np.isfinite(values)) or np.any(values <= 0):
        raise DomainError("clr requires strictly positive, finite values", stage="clr")
    log_values = np.log(values)
    return log_values - log_values.mean(axis=1, keepdims=True)


def clr_inverse(coordinates: np.ndarray) -> np.ndarray:
    """Map CLR coordinates back to closed compositions."""
    expd = np.exp(np.asarray(coordinates, dtype=np.float64))
    return expd / expd.sum(axis=1, keepdims=True)


class CLRTransform(Transform):
    """
    Transform a FILTERED_PROPORTIONS table into CLR coordinates.

    Output columns follow the table's canonical feature_order, which was
    fixed by the abundance filter; this transform only reads it.

    Examples:
        >>> clr_table = CLRTransform().apply(filtered)
        >>> np.allclose(clr_table.data.sum(axis=1), 0.0)
        True
    """

    expected_stage = TableStage.FILTERED_PROPORTIONS

    def __init__(self):
        super().__init__(name="CLRTransform", params={})

    def validate(self, table: AbundanceTable) -> list[str]:
        errors = super().validate(table)
        if table.feature_order is None:
            errors.append("Table has no canonical feature order; apply AbundanceFilter first")
        return errors

    def apply(self, table: AbundanceTable) -> AbundanceTable:
        """
        Raises:
            StructuralError: If the table is not filtered proportions with a
                canonical feature order (raised by check())
            DomainError: If any value is not strictly positive and finite,
                naming the offending samples and features, or if a row of
                the result does not sum to zero within tolerance
        """
        self.check(table)

        ordered = table.reorder_features(table.feature_order)
        values = ordered.data

        bad = ~np.isfinite(values) | (values <= 0)
        if bad.any():
            rows, cols = np.nonzero(bad)
            raise DomainError(
                f"{int(bad.sum())} non-positive or non-finite values reached the log-ratio step",
                stage=self.name,
                samples=ordered.sample_ids[np.unique(rows)],
                features=ordered.feature_ids[np.unique(cols)],
            )

        coordinates = clr(values)

        drift = np.abs(coordinates.sum(axis=1))
        tolerance = np.maximum(
            ROW_SUM_ATOL,
            ROW_SUM_EPS_FACTOR * np.finfo(np.float64).eps * np.abs(coordinates).sum(axis=1),
        )
        breach = drift > tolerance
        if breach.any():
            raise DomainError(
                f"CLR row sums deviate from zero by up to {drift.max():.2e}",
                stage=self.name,
                samples=ordered.sample_ids[breach],
            )

        logger.info(
            f"CLR transform: {ordered.n_samples} samples × {ordered.n_features} features"
        )
        return ordered.with_data(coordinates, stage=TableStage.CLR)
