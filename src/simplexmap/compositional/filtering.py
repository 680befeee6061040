"""
Abundance filtering and canonical feature ordering.

Features that never reach a minimum relative abundance in any sample add
noise to log-ratio geometry and eigendecomposition. The filter keeps a
feature if its maximum proportion across samples is at least the
threshold, so raising the threshold can only shrink the kept set.

Canonical Feature Order:
    After filtering, the kept features are ordered once by descending total
    abundance, ties broken by feature id. The order is stored on the
    filtered table (AbundanceTable.feature_order) and is what the CLR
    step, bar-chart legends and clustering outputs use. Consumers read it
    from the table; nothing downstream re-derives it.

Engineering Design:
    - Pure function (Transform): input table -> output table
    - Deterministic given the threshold and the ordering basis
    - get_filter_result() exposes pass/fail sets without subsetting
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from simplexmap.core.errors import StructuralError
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['AbundanceFilter', 'AbundanceFilterResult', 'canonical_feature_order']

DEFAULT_THRESHOLD = 1e-4


@dataclass
class AbundanceFilterResult:
    """Results from abundance filtering with full provenance."""
    passed_features: pd.Index
    failed_features: pd.Index
    max_proportion: pd.Series
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_passed(self) -> int:
        return len(self.passed_features)

    @property
    def n_failed(self) -> int:
        return len(self.failed_features)

    @property
    def pass_rate(self) -> float:
        total = self.n_passed + self.n_failed
        return self.n_passed / total if total > 0 else 0.0


def canonical_feature_order(totals: pd.Series) -> pd.Index:
    """
    Order features by descending total, ties broken by ascending feature id.

    Args:
        totals: Total abundance per feature, indexed by feature id

    Returns:
        Feature ids in canonical order
    """
    ids = totals.index.to_numpy(dtype=str)
    order = np.lexsort((ids, -totals.to_numpy(dtype=float)))
    return pd.Index(totals.index[order])


class AbundanceFilter(Transform):
    """
    Keep features whose maximum proportion in any sample reaches a threshold.

    Params:
        threshold: Minimum proportion tau (default 1e-4, i.e. 0.01%)
        min_features: Minimum number of kept features; fewer raises
            StructuralError (a composition needs at least two parts)

    Examples:
        >>> filtered = AbundanceFilter(threshold=1e-4).apply(proportions, ordering_basis=pseudo)
        >>> filtered.feature_order[:5]
    """

    expected_stage = TableStage.PROPORTIONS

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, min_features: int = 2):
        if not (0 <= threshold <= 1):
            raise ValueError(f"threshold must be in [0, 1], got {threshold}")
        super().__init__(
            name="AbundanceFilter",
            params={"threshold": threshold, "min_features": min_features},
        )
        self.threshold = threshold
        self.min_features = min_features

    def _compute_keep_mask(self, table: AbundanceTable) -> tuple[np.ndarray, pd.Series]:
        max_proportion = pd.Series(table.data.max(axis=0), index=table.feature_ids)
        keep_mask = (max_proportion >= self.threshold).to_numpy()
        return keep_mask, max_proportion

    def get_filter_result(self, table: AbundanceTable) -> AbundanceFilterResult:
        """Compute passing/failing features without subsetting the table."""
        self.check(table)
        keep_mask, max_proportion = self._compute_keep_mask(table)
        return AbundanceFilterResult(
            passed_features=table.feature_ids[keep_mask],
            failed_features=table.feature_ids[~keep_mask],
            max_proportion=max_proportion,
            parameters=dict(self.params),
        )

    def apply(
        self,
        table: AbundanceTable,
        ordering_basis: Optional[AbundanceTable] = None,
    ) -> AbundanceTable:
        """
        Filter features and fix the canonical feature order.

        Args:
            table: PROPORTIONS table
            ordering_basis: Table whose column totals rank the kept features
                (the pipeline passes the pseudo-count table). Must share
                samples and features with `table`. Defaults to `table`.

        Returns:
            FILTERED_PROPORTIONS table with feature_order set. Columns keep
            their input order; feature_order holds the canonical order.

        Raises:
            StructuralError: If fewer than min_features features pass
        """
        self.check(table)

        keep_mask, _ = self._compute_keep_mask(table)
        n_kept = int(keep_mask.sum())
        n_removed = table.n_features - n_kept

        if n_kept < self.min_features:
            raise StructuralError(
                f"only {n_kept} feature(s) reach threshold {self.threshold:g}; "
                f"at least {self.min_features} required",
                stage=self.name,
            )

        basis = table if ordering_basis is None else ordering_basis
        if not (basis.sample_ids.equals(table.sample_ids)
                and basis.feature_ids.equals(table.feature_ids)):
            raise ValueError("ordering_basis must share samples and features with table")

        kept = table.feature_ids[keep_mask]
        totals = pd.Series(basis.data[:, keep_mask].sum(axis=0), index=kept)
        order = canonical_feature_order(totals)

        logger.info(
            f"AbundanceFilter(threshold={self.threshold:g}): kept {n_kept}/{table.n_features} "
            f"features ({100 * n_kept / table.n_features:.1f}%), removed {n_removed}"
        )

        filtered = table.select_features(keep_mask)
        return filtered.with_data(
            filtered.data,
            stage=TableStage.FILTERED_PROPORTIONS,
            quality_flags=filtered.quality_flags,
            feature_order=order,
        )
