"""
Statistical testing on CLR coordinates.

Exports:
- Two-group differential abundance (Welch / Wilcoxon rank-sum)
- Multiple testing correction (FDR)
"""

from .differential import (
    TESTS,
    DifferentialTest,
    WelchTTest,
    WilcoxonRankSum,
    compare_groups,
    fdr_correction,
)

__all__ = [
    "TESTS",
    "DifferentialTest",
    "WelchTTest",
    "WilcoxonRankSum",
    "compare_groups",
    "fdr_correction",
]
