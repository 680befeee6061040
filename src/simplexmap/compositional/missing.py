"""
Explicit missing-value normalization for raw count tables.

Raw feature tables encode "not observed" in two ways: a literal zero and a
missing cell (NA). Downstream compositional steps only understand zeros,
so missing cells are coerced to zero here, in one auditable step that
reports how many cells were touched and flags each of them.

Examples:
    >>> import numpy as np
    >>> from simplexmap.core.table import AbundanceTable
    >>> from simplexmap.compositional.missing import normalize_missing
    >>>
    >>> raw = AbundanceTable.from_counts(
    ...     np.array([[1, np.nan], [3, 4]]), ["S1", "S2"], ["A", "B"]
    ... )
    >>> table, n_coerced = normalize_missing(raw)
    >>> n_coerced
    1
"""

from __future__ import annotations

import logging

import numpy as np

from simplexmap.core.errors import StructuralError
from simplexmap.core.quality import QualityFlag
from simplexmap.core.table import AbundanceTable, TableStage

logger = logging.getLogger(__name__)

__all__ = ['normalize_missing', 'validate_counts']

STAGE = "normalize_missing"


def validate_counts(table: AbundanceTable, require_integer: bool = True) -> None:
    """
    Check the structural preconditions of a raw count table.

    NaN cells are ignored here (they are handled by normalize_missing).

    Args:
        table: COUNTS table
        require_integer: Reject non-integer entries

    Raises:
        StructuralError: On infinite, negative or (optionally) fractional
            entries, naming the offending samples and features
    """
    if table.stage is not TableStage.COUNTS:
        raise StructuralError(
            f"expected a counts table, got {table.stage.value}", stage=STAGE
        )

    data = table.data
    observed = ~np.isnan(data)

    bad = observed & np.isinf(data)
    if bad.any():
        rows, cols = np.nonzero(bad)
        raise StructuralError(
            f"{bad.sum()} infinite entries in count table",
            stage=STAGE,
            samples=table.sample_ids[np.unique(rows)],
            features=table.feature_ids[np.unique(cols)],
        )

    bad = observed & (data < 0)
    if bad.any():
        rows, cols = np.nonzero(bad)
        raise StructuralError(
            f"{bad.sum()} negative entries in count table",
            stage=STAGE,
            samples=table.sample_ids[np.unique(rows)],
            features=table.feature_ids[np.unique(cols)],
        )

    if require_integer:
        with np.errstate(invalid='ignore'):
            bad = observed & (data != np.round(data))
        if bad.any():
            rows, cols = np.nonzero(bad)
            raise StructuralError(
                f"{bad.sum()} non-integer entries in count table",
                stage=STAGE,
                samples=table.sample_ids[np.unique(rows)],
                features=table.feature_ids[np.unique(cols)],
            )


def normalize_missing(
    table: AbundanceTable,
    require_integer: bool = True,
) -> tuple[AbundanceTable, int]:
    """
    Coerce missing (NaN) counts to zero and flag them.

    Args:
        table: COUNTS table, possibly containing NaN
        require_integer: Reject non-integer observed entries

    Returns:
        (new table with no NaN, number of coerced cells). Coerced cells
        carry QualityFlag.MISSING_ORIGINAL.

    Raises:
        StructuralError: If observed entries are negative, infinite or
            (with require_integer) fractional
    """
    validate_counts(table, require_integer=require_integer)

    missing = np.isnan(table.data)
    n_coerced = int(missing.sum())

    data = np.where(missing, 0.0, table.data)
    flags = table.quality_flags.copy()
    flags[missing] |= QualityFlag.MISSING_ORIGINAL

    if n_coerced:
        logger.info(
            f"Coerced {n_coerced:,} missing entries to zero "
            f"({100 * n_coerced / data.size:.2f}% of table)"
        )
    else:
        logger.info("No missing entries found")

    return table.with_data(data, stage=TableStage.COUNTS, quality_flags=flags), n_coerced
