"""
Compositional preprocessing: from raw counts to log-ratio coordinates.

Components (in pipeline order):
    normalize_missing: Explicit NA -> 0 coercion with a diagnostic count
    ZeroPatternAnalyzer: Per-sample zero patterns, all-zero sample detection
    ZeroReplacement: Count-zero multiplicative replacement
    Closure: Pseudo-counts -> proportions
    AbundanceFilter: Maximum-proportion threshold + canonical feature order
    CLRTransform: Centered log-ratio coordinates

Examples:
    >>> from simplexmap.compositional import (
    ...     normalize_missing, ZeroPatternAnalyzer, drop_degenerate_samples,
    ...     ZeroReplacement, Closure, AbundanceFilter, CLRTransform,
    ... )
    >>> counts, n_na = normalize_missing(raw)
    >>> counts, dropped = drop_degenerate_samples(counts)
    >>> pseudo = ZeroReplacement().apply(counts)
    >>> proportions = Closure().apply(pseudo)
    >>> filtered = AbundanceFilter(1e-4).apply(proportions, ordering_basis=pseudo)
    >>> clr_table = CLRTransform().apply(filtered)
"""

from simplexmap.compositional.missing import normalize_missing, validate_counts
from simplexmap.compositional.zeros import (
    ZeroPatternAnalyzer,
    ZeroPatternReport,
    ZeroReplacement,
    drop_absent_features,
    drop_degenerate_samples,
)
from simplexmap.compositional.closure import Closure, closure
from simplexmap.compositional.filtering import (
    AbundanceFilter,
    AbundanceFilterResult,
    canonical_feature_order,
)
from simplexmap.compositional.clr import CLRTransform, clr, clr_inverse

__all__ = [
    'normalize_missing',
    'validate_counts',
    'ZeroPatternAnalyzer',
    'ZeroPatternReport',
    'ZeroReplacement',
    'drop_degenerate_samples',
    'drop_absent_features',
    'Closure',
    'closure',
    'AbundanceFilter',
    'AbundanceFilterResult',
    'canonical_feature_order',
    'CLRTransform',
    'clr',
    'clr_inverse',
]
