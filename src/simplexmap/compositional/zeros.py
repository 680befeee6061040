"""
Zero pattern analysis and count-zero multiplicative replacement.

Compositional Context:
    Log-ratio geometry needs strictly positive parts, but sparse count
    tables are mostly zeros. Three separate problems follow:

    1. Degenerate samples: a sample whose every feature is zero has no
       composition at all. No replacement can fix it; it has to leave the
       dataset before anything else happens.

    2. Sampling zeros: a zero in an otherwise observed sample means "below
       detection at this depth". Those are replaced by a small pseudo-count.

    3. Absent features: a feature that is zero in every sample was never
       observed. Replacement would hand it a delta-sized share of every
       sample, so it is removed along with degenerate samples.

Zero Patterns:
    Each sample's zero/non-zero bit vector is summarized as a pattern key.
    Bits are laid out in sorted feature-id order, so the key of a sample
    does not depend on the column order of the input file. Degenerate
    samples are detected by predicate (every bit zero), never by a
    particular key value.

Multiplicative Replacement:
    For sample s with total T_s and k_s zeros, and a fixed fraction delta:
        zero entries     -> delta * T_s
        non-zero entries -> x_sj * (1 - k_s * delta)
    The sample total is preserved exactly, ratios between non-zero parts
    are unchanged, and because the pseudo-count is a fraction of the total
    the closed composition does not depend on sequencing depth.

    Default delta = 1 / D^2 (D = number of features).

References:
    - Martín-Fernández, Barceló-Vidal & Pawlowsky-Glahn (2003) "Dealing with
      zeros and missing values in compositional data sets using
      nonparametric imputation". Mathematical Geology 35(3).
    - Palarea-Albaladejo & Martín-Fernández (2015) "zCompositions - R package
      for multivariate imputation of left-censored data under a compositional
      approach". Chemometrics and Intelligent Laboratory Systems 143.

Examples:
    >>> import numpy as np
    >>> from simplexmap.core.table import AbundanceTable
    >>> from simplexmap.compositional.zeros import (
    ...     ZeroPatternAnalyzer, ZeroReplacement, drop_degenerate_samples,
    ... )
    >>>
    >>> table = AbundanceTable.from_counts(
    ...     np.array([[10, 0, 5], [0, 8, 2], [0, 0, 0]]),
    ...     ["S1", "S2", "S3"], ["A", "B", "C"],
    ... )
    >>> report = ZeroPatternAnalyzer().analyze(table)
    >>> report.degenerate_samples
    ['S3']
    >>> usable, dropped = drop_degenerate_samples(table, report)
    >>> pseudo = ZeroReplacement().apply(usable)
    >>> bool((pseudo.data > 0).all())
    True
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from simplexmap.core.errors import DomainError, SparsityWarning, StructuralError
from simplexmap.core.quality import QualityFlag
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = [
    'ZeroPatternReport',
    'ZeroPatternAnalyzer',
    'drop_degenerate_samples',
    'drop_absent_features',
    'ZeroReplacement',
]


@dataclass
class ZeroPatternReport:
    """Per-sample zero patterns with their frequencies."""
    patterns: pd.Series
    # patterns: sample_id -> pattern key (hex string of the packed zero bits)
    zero_counts: pd.Series
    n_features: int
    frequencies: pd.Series = field(init=False)

    def __post_init__(self) -> None:
        counts = self.patterns.value_counts()
        # Most frequent first; ties ordered by key for reproducibility
        order = sorted(counts.index, key=lambda key: (-counts[key], key))
        self.frequencies = counts.loc[order]

    @property
    def degenerate_mask(self) -> np.ndarray:
        """Boolean mask of samples whose every feature is zero."""
        return (self.zero_counts == self.n_features).to_numpy()

    @property
    def degenerate_samples(self) -> list[str]:
        return self.zero_counts.index[self.degenerate_mask].tolist()

    @property
    def n_patterns(self) -> int:
        return len(self.frequencies)

    def to_frame(self) -> pd.DataFrame:
        """One row per sample: pattern key, zero count, pattern frequency, degenerate flag."""
        return pd.DataFrame({
            'pattern': self.patterns,
            'n_zero': self.zero_counts,
            'pattern_frequency': self.patterns.map(self.frequencies),
            'degenerate': self.degenerate_mask,
        }, index=self.patterns.index)


class ZeroPatternAnalyzer:
    """
    Classify each sample's zero/non-zero pattern.

    Examples:
        >>> report = ZeroPatternAnalyzer().analyze(counts_table)
        >>> report.frequencies.head()
    """

    def analyze(self, table: AbundanceTable) -> ZeroPatternReport:
        """
        Compute pattern keys and degenerate samples.

        Raises:
            StructuralError: If the table is not a COUNTS table or still
                contains missing values
        """
        if table.stage is not TableStage.COUNTS:
            raise StructuralError(
                f"zero patterns are defined on counts, got {table.stage.value}",
                stage="zero_patterns",
            )
        if np.isnan(table.data).any():
            raise StructuralError(
                "table contains missing values; run normalize_missing first",
                stage="zero_patterns",
            )

        zero_mask = table.data == 0
        # Fixed layout: sorted feature ids, independent of input column order
        layout = np.argsort(table.feature_ids.to_numpy(dtype=str), kind="mergesort")
        packed = np.packbits(zero_mask[:, layout], axis=1)
        keys = [row.tobytes().hex() for row in packed]

        report = ZeroPatternReport(
            patterns=pd.Series(keys, index=table.sample_ids, name="pattern"),
            zero_counts=pd.Series(zero_mask.sum(axis=1), index=table.sample_ids, name="n_zero"),
            n_features=table.n_features,
        )

        logger.info(
            f"Zero patterns: {report.n_patterns} distinct across {table.n_samples} samples, "
            f"{len(report.degenerate_samples)} all-zero"
        )
        return report


def drop_degenerate_samples(
    table: AbundanceTable,
    report: Optional[ZeroPatternReport] = None,
) -> tuple[AbundanceTable, list[str]]:
    """
    Remove samples whose every feature is zero.

    Returns:
        (table without degenerate samples, dropped sample ids)

    Raises:
        StructuralError: If no sample remains
    """
    if report is None:
        report = ZeroPatternAnalyzer().analyze(table)

    dropped = report.degenerate_samples
    if not dropped:
        return table, []

    if len(dropped) == table.n_samples:
        raise StructuralError(
            "every sample is all-zero; no composition exists",
            stage="zero_patterns",
            samples=dropped,
        )

    for sample_id in dropped:
        logger.warning(f"Dropping all-zero sample '{sample_id}'")

    return table.select_samples(~report.degenerate_mask), dropped


def drop_absent_features(table: AbundanceTable) -> tuple[AbundanceTable, list[str]]:
    """
    Remove features with no non-zero count in any sample.

    Such features carry no observation; replacing their zeros would give
    them a pseudo-count proportion of delta in every sample.

    Returns:
        (table without absent features, dropped feature ids)
    """
    absent = ~np.any(table.data > 0, axis=0)
    dropped = table.feature_ids[absent].tolist()
    if not dropped:
        return table, []

    logger.warning(
        f"Dropping {len(dropped)} feature(s) with no non-zero counts: "
        + ", ".join(map(str, dropped[:10]))
        + (" ..." if len(dropped) > 10 else "")
    )
    return table.select_features(~absent), dropped


class ZeroReplacement(Transform):
    """
    Count-zero multiplicative replacement (closure-preserving).

    Params:
        delta: Pseudo-count as a fraction of each sample's total.
               None uses 1 / D^2 for a table with D features.
        max_zero_fraction: Features whose fraction of zero samples exceeds
               this value trigger a SparsityWarning and are flagged
               SPARSE_FEATURE. Replacement still proceeds.

    Examples:
        >>> pseudo = ZeroReplacement(max_zero_fraction=0.8).apply(counts)
        >>> replaced = (pseudo.quality_flags & QualityFlag.ZERO_REPLACED) > 0
    """

    expected_stage = TableStage.COUNTS

    def __init__(self, delta: Optional[float] = None, max_zero_fraction: float = 0.8):
        if delta is not None and not (0 < delta < 1):
            raise ValueError(f"delta must be in (0, 1), got {delta}")
        if not (0 < max_zero_fraction <= 1):
            raise ValueError(f"max_zero_fraction must be in (0, 1], got {max_zero_fraction}")
        super().__init__(
            name="ZeroReplacement",
            params={"delta": delta, "max_zero_fraction": max_zero_fraction},
        )
        self.delta = delta
        self.max_zero_fraction = max_zero_fraction

    def resolve_delta(self, n_features: int) -> float:
        """Effective replacement fraction for a table with n_features columns."""
        if self.delta is not None:
            return self.delta
        return 1.0 / n_features ** 2

    def validate(self, table: AbundanceTable) -> list[str]:
        errors = super().validate(table)
        if np.isnan(table.data).any():
            errors.append("Table contains missing values; run normalize_missing first")
        elif np.any(table.data < 0):
            errors.append("Table contains negative counts")
        return errors

    def sparse_features(self, table: AbundanceTable) -> pd.Index:
        """Features whose zero fraction exceeds max_zero_fraction."""
        zero_fraction = (table.data == 0).mean(axis=0)
        return table.feature_ids[zero_fraction > self.max_zero_fraction]

    def apply(self, table: AbundanceTable) -> AbundanceTable:
        """
        Replace zeros with pseudo-counts.

        Raises:
            StructuralError: If the input is not a clean COUNTS table, or if
                any sample is all-zero (degenerate samples must be removed
                before replacement)
            DomainError: If delta is too large for a sample's zero count
        """
        self.check(table)

        counts = table.data
        totals = counts.sum(axis=1)

        degenerate = totals <= 0
        if degenerate.any():
            raise StructuralError(
                "all-zero samples reached zero replacement; remove them first",
                stage=self.name,
                samples=table.sample_ids[degenerate],
            )

        delta = self.resolve_delta(table.n_features)
        zero_mask = counts == 0
        n_zero = zero_mask.sum(axis=1)
        shrink = 1.0 - n_zero * delta

        bad = shrink <= 0
        if bad.any():
            raise DomainError(
                f"delta={delta:g} leaves no mass for non-zero counts "
                f"(n_zero * delta >= 1)",
                stage=self.name,
                samples=table.sample_ids[bad],
            )

        pseudo = np.where(zero_mask, delta * totals[:, None], counts * shrink[:, None])

        flags = table.quality_flags.copy()
        flags[zero_mask] |= QualityFlag.ZERO_REPLACED

        sparse = self.sparse_features(table)
        if len(sparse):
            sparse_mask = table.feature_ids.isin(sparse)
            flags[:, sparse_mask] |= QualityFlag.SPARSE_FEATURE
            message = (
                f"{len(sparse)} feature(s) have more than "
                f"{100 * self.max_zero_fraction:.0f}% zeros; replacement may be unreliable: "
                + ", ".join(map(str, sparse[:10]))
                + (" ..." if len(sparse) > 10 else "")
            )
            logger.warning(message)
            warnings.warn(message, SparsityWarning, stacklevel=2)

        logger.info(
            f"Replaced {int(zero_mask.sum()):,} zeros "
            f"({100 * zero_mask.mean():.1f}% of table) with delta={delta:.3g}"
        )

        return table.with_data(pseudo, stage=TableStage.PSEUDO_COUNTS, quality_flags=flags)
