"""
Per-feature differential abundance between two sample groups in CLR space.

This component sits beside the core pipeline, not inside it: it consumes a
CLR table plus a sample grouping and produces one row of test statistics
and effect sizes per feature. The test itself is swappable:

    welch     Welch's unequal-variance t-test (scipy.stats.ttest_ind)
    wilcoxon  Wilcoxon rank-sum / Mann-Whitney U (scipy.stats.mannwhitneyu)

P-values are adjusted across features with statsmodels' multipletests
(Benjamini-Hochberg by default). Effect sizes are signed Cohen's d with a
pooled standard deviation, positive when group_a has the larger mean CLR.

CLR coordinates are relative to each sample's geometric mean, so a
"difference" here is a difference in log-ratio to the sample centre, not
in absolute abundance.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Literal, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats as scipy_stats

from simplexmap.core.errors import StructuralError
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.utils.statistics import cohens_d

logger = logging.getLogger(__name__)

__all__ = [
    'DifferentialTest',
    'WelchTTest',
    'WilcoxonRankSum',
    'TESTS',
    'fdr_correction',
    'compare_groups',
]

MIN_GROUP_SIZE = 2


def fdr_correction(
    pvalues: NDArray[np.float64],
    method: Literal["BH", "BY", "bonferroni"] = "BH",
    alpha: float = 0.05,
) -> NDArray[np.float64]:
    """
    Apply multiple testing correction.

    Args:
        pvalues: Array of raw p-values. NaN entries stay NaN and are not
            counted as tests.
        method: Correction method:
            - "BH": Benjamini-Hochberg (controls FDR)
            - "BY": Benjamini-Yekutieli (controls FDR under dependence)
            - "bonferroni": Bonferroni (controls FWER)
        alpha: Significance threshold.

    Returns:
        Array of adjusted p-values.
    """
    from statsmodels.stats.multitest import multipletests

    pvalues = np.asarray(pvalues, dtype=np.float64)
    valid_mask = ~np.isnan(pvalues)
    adj_pvals = np.full_like(pvalues, np.nan)

    if not np.any(valid_mask):
        return adj_pvals

    method_map = {"BH": "fdr_bh", "BY": "fdr_by", "bonferroni": "bonferroni"}
    _, adj_pvals[valid_mask], _, _ = multipletests(
        pvalues[valid_mask],
        alpha=alpha,
        method=method_map.get(method, method),
    )

    return adj_pvals


class DifferentialTest(ABC):
    """
    Two-group test applied independently to every feature.

    Subclasses implement _statistics() on (n_a × features, n_b × features)
    arrays; test() handles grouping, effect sizes and FDR.
    """

    name: str = "abstract"

    @abstractmethod
    def _statistics(
        self, a: NDArray[np.float64], b: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Return (statistic, p-value) per column."""

    def test(
        self,
        clr: AbundanceTable,
        groups: Union[pd.Series, str],
        group_a: str,
        group_b: str,
        fdr: Literal["BH", "BY", "bonferroni"] = "BH",
    ) -> pd.DataFrame:
        """
        Compare group_a against group_b for every feature.

        Args:
            clr: CLR table
            groups: Group label per sample (Series indexed by sample id), or
                the name of a column in clr.sample_metadata
            group_a: Label of the first group
            group_b: Label of the second group
            fdr: Multiple testing correction method

        Returns:
            DataFrame indexed by feature (canonical order) with columns
            mean_a, mean_b, difference, statistic, pvalue, qvalue,
            cohens_d, n_a, n_b

        Raises:
            StructuralError: If the table is not CLR or a group has fewer
                than 2 samples
            KeyError: If the grouping column does not exist
        """
        if clr.stage is not TableStage.CLR:
            raise StructuralError(
                f"differential testing expects a clr table, got {clr.stage.value}",
                stage="differential",
            )

        labels = _resolve_groups(clr, groups)
        in_a = (labels == group_a).to_numpy()
        in_b = (labels == group_b).to_numpy()

        for label, mask in ((group_a, in_a), (group_b, in_b)):
            if mask.sum() < MIN_GROUP_SIZE:
                raise StructuralError(
                    f"group '{label}' has {int(mask.sum())} sample(s); "
                    f"at least {MIN_GROUP_SIZE} required",
                    stage="differential",
                    samples=clr.sample_ids[mask],
                )

        a = clr.data[in_a]
        b = clr.data[in_b]
        statistic, pvalues = self._statistics(a, b)
        pvalues = np.asarray(pvalues, dtype=np.float64)

        both = in_a | in_b
        effect = np.array([
            cohens_d(clr.data[both, j], in_a[both]) for j in range(clr.n_features)
        ])

        result = pd.DataFrame({
            'mean_a': a.mean(axis=0),
            'mean_b': b.mean(axis=0),
            'difference': a.mean(axis=0) - b.mean(axis=0),
            'statistic': np.asarray(statistic, dtype=np.float64),
            'pvalue': pvalues,
            'qvalue': fdr_correction(pvalues, method=fdr),
            'cohens_d': effect,
            'n_a': int(in_a.sum()),
            'n_b': int(in_b.sum()),
        }, index=pd.Index(clr.feature_ids, name='feature'))
        result.attrs.update({'method': self.name, 'group_a': group_a,
                             'group_b': group_b, 'fdr': fdr})

        n_sig = int((result['qvalue'] < 0.05).sum())
        logger.info(
            f"{self.name}: {group_a} (n={int(in_a.sum())}) vs {group_b} "
            f"(n={int(in_b.sum())}), {n_sig}/{clr.n_features} features at q < 0.05"
        )
        return result


class WelchTTest(DifferentialTest):
    """Welch's t-test (unequal variances)."""

    name = "welch"

    def _statistics(self, a, b):
        res = scipy_stats.ttest_ind(a, b, axis=0, equal_var=False)
        return res.statistic, res.pvalue


class WilcoxonRankSum(DifferentialTest):
    """Wilcoxon rank-sum (Mann-Whitney U), two-sided."""

    name = "wilcoxon"

    def _statistics(self, a, b):
        res = scipy_stats.mannwhitneyu(a, b, alternative="two-sided", axis=0)
        return res.statistic, res.pvalue


TESTS: dict[str, type[DifferentialTest]] = {
    WelchTTest.name: WelchTTest,
    WilcoxonRankSum.name: WilcoxonRankSum,
}


def _resolve_groups(clr: AbundanceTable, groups: Union[pd.Series, str]) -> pd.Series:
    if isinstance(groups, str):
        if groups not in clr.sample_metadata.columns:
            raise KeyError(f"group column '{groups}' not found in sample metadata")
        labels = clr.sample_metadata[groups]
    else:
        labels = groups.reindex(clr.sample_ids)
    return labels.map(lambda v: str(v) if pd.notna(v) else None)


def compare_groups(
    clr: AbundanceTable,
    groups: Union[pd.Series, str],
    group_a: str,
    group_b: str,
    method: Literal["welch", "wilcoxon"] = "welch",
    fdr: Literal["BH", "BY", "bonferroni"] = "BH",
) -> pd.DataFrame:
    """
    Per-feature two-group comparison of CLR values.

    Examples:
        >>> result = run_pipeline(table)
        >>> table_de = compare_groups(result.clr, "diagnosis", "CD", "control")
        >>> table_de.sort_values("qvalue").head()

    Raises:
        ValueError: If method is unknown
    """
    if method not in TESTS:
        raise ValueError(f"Unknown method '{method}'. Choose from: {', '.join(TESTS)}")
    return TESTS[method]().test(clr, groups, group_a, group_b, fdr=fdr)
