"""
End-to-end compositional pipeline: counts -> CLR -> PCA + Ward clustering.

The forward chain is fixed:

    normalize_missing -> zero patterns -> degenerate-sample handling
    -> absent-feature removal
    -> ZeroReplacement -> Closure -> AbundanceFilter -> CLRTransform
    -> run_pca, aitchison_distances + ward_clustering

Each stage is a pure function of its inputs; run_pipeline() calls them in
order and returns every intermediate in a PipelineResult. Any exception
aborts the run; there is no partial result.

Examples:
    >>> from simplexmap.io import load_feature_table
    >>> from simplexmap.pipeline import PipelineConfig, run_pipeline
    >>>
    >>> table = load_feature_table("counts.tsv")
    >>> config = PipelineConfig.from_dict({"filter": {"threshold": 1e-3}})
    >>> result = run_pipeline(table, config)
    >>> result.pca.explained_variance_ratio[:2]
    >>> result.dendrogram.leaf_labels
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from simplexmap import __version__
from simplexmap.compositional import (
    AbundanceFilter,
    AbundanceFilterResult,
    Closure,
    CLRTransform,
    ZeroPatternAnalyzer,
    ZeroPatternReport,
    ZeroReplacement,
    drop_absent_features,
    drop_degenerate_samples,
    normalize_missing,
)
from simplexmap.core.errors import StructuralError
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.ordination import (
    Dendrogram,
    PCAResult,
    aitchison_distances,
    run_pca,
    ward_clustering,
)

logger = logging.getLogger(__name__)

__all__ = [
    'ZeroReplacementConfig',
    'FilterConfig',
    'OrdinationConfig',
    'PipelineConfig',
    'PipelineResult',
    'run_pipeline',
]


@dataclass
class ZeroReplacementConfig:
    """Zero handling configuration."""
    delta: Optional[float] = None
    max_zero_fraction: float = 0.8
    drop_degenerate_samples: bool = True
    require_integer: bool = True


@dataclass
class FilterConfig:
    """Abundance filter configuration."""
    threshold: float = 1e-4
    min_features: int = 2


@dataclass
class OrdinationConfig:
    """PCA and clustering configuration. Linkage is always Ward."""
    n_components: Optional[int] = None
    linkage: str = "ward"


@dataclass
class PipelineConfig:
    """
    Complete pipeline configuration.

    Mirrors the sections of a YAML/JSON config file:

        zero_replacement:
          delta: null
          max_zero_fraction: 0.8
          drop_degenerate_samples: true
        filter:
          threshold: 0.0001
        ordination:
          n_components: null
    """
    zero_replacement: ZeroReplacementConfig = field(default_factory=ZeroReplacementConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    ordination: OrdinationConfig = field(default_factory=OrdinationConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        Raises:
            ValueError: If any value is out of range
        """
        zr = self.zero_replacement
        if zr.delta is not None and not (0 < zr.delta < 1):
            raise ValueError(f"zero_replacement.delta must be in (0, 1), got {zr.delta}")
        if not (0 < zr.max_zero_fraction <= 1):
            raise ValueError(
                f"zero_replacement.max_zero_fraction must be in (0, 1], got {zr.max_zero_fraction}"
            )
        if not (0 <= self.filter.threshold <= 1):
            raise ValueError(f"filter.threshold must be in [0, 1], got {self.filter.threshold}")
        if self.filter.min_features < 2:
            raise ValueError(f"filter.min_features must be >= 2, got {self.filter.min_features}")
        n_components = self.ordination.n_components
        if n_components is not None and n_components < 1:
            raise ValueError(f"ordination.n_components must be >= 1, got {n_components}")
        if self.ordination.linkage != "ward":
            raise ValueError(
                f"ordination.linkage must be 'ward', got '{self.ordination.linkage}'"
            )

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> PipelineConfig:
        """
        Build a PipelineConfig from a nested mapping (e.g., a loaded YAML file).

        Unknown sections or keys raise ValueError so typos do not pass silently.
        """
        sections = {
            'zero_replacement': ZeroReplacementConfig,
            'filter': FilterConfig,
            'ordination': OrdinationConfig,
        }
        unknown = set(config) - set(sections)
        if unknown:
            raise ValueError(
                f"Unknown config section(s): {', '.join(sorted(unknown))}. "
                f"Valid sections: {', '.join(sections)}"
            )

        kwargs = {}
        for name, section_cls in sections.items():
            values = config.get(name) or {}
            if not isinstance(values, Mapping):
                raise ValueError(f"Config section '{name}' must be a mapping")
            valid = {f.name for f in fields(section_cls)}
            bad = set(values) - valid
            if bad:
                raise ValueError(
                    f"Unknown key(s) in '{name}': {', '.join(sorted(bad))}. "
                    f"Valid keys: {', '.join(sorted(valid))}"
                )
            kwargs[name] = section_cls(**values)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineResult:
    """
    Every intermediate of one pipeline run.

    Attributes:
        counts: COUNTS table after NA normalization and sample/feature removal
        zero_report: Zero patterns of the normalized counts (before removal)
        n_missing_coerced: Number of NA cells coerced to zero
        dropped_samples: All-zero samples removed before replacement
        absent_features: Features with no non-zero count, removed before replacement
        pseudo_counts: PSEUDO_COUNTS table
        proportions: PROPORTIONS table
        filter_result: Pass/fail features of the abundance filter
        filtered: FILTERED_PROPORTIONS table (carries feature_order)
        clr: CLR table (columns in canonical feature order)
        pca: PCAResult
        distances: Aitchison distance matrix
        dendrogram: Ward dendrogram
        delta: Effective zero-replacement fraction
        config: Configuration used
    """
    counts: AbundanceTable
    zero_report: ZeroPatternReport
    n_missing_coerced: int
    dropped_samples: List[str]
    absent_features: List[str]
    pseudo_counts: AbundanceTable
    proportions: AbundanceTable
    filter_result: AbundanceFilterResult
    filtered: AbundanceTable
    clr: AbundanceTable
    pca: PCAResult
    distances: pd.DataFrame
    dendrogram: Dendrogram
    delta: float
    config: PipelineConfig
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def feature_order(self) -> pd.Index:
        """Canonical feature order, fixed once by the abundance filter."""
        return self.filtered.feature_order

    @property
    def sample_order(self) -> List[str]:
        """Canonical sample order (dendrogram leaves)."""
        return self.dendrogram.leaf_labels

    def parameters_dict(self) -> Dict[str, Any]:
        """JSON-serializable provenance record of this run."""
        return {
            'simplexmap_version': __version__,
            'timestamp': self.timestamp.isoformat(),
            'config': self.config.to_dict(),
            'effective': {
                'delta': self.delta,
                'threshold': self.filter_result.parameters.get('threshold'),
                'linkage': self.dendrogram.method,
                'n_components': self.pca.n_components,
            },
            'counts': {
                'n_samples': self.counts.n_samples,
                'n_features': self.counts.n_features,
                'n_missing_coerced': self.n_missing_coerced,
                'dropped_samples': list(self.dropped_samples),
                'absent_features': list(self.absent_features),
                'n_zero_patterns': self.zero_report.n_patterns,
            },
            'filter': {
                'n_passed': self.filter_result.n_passed,
                'n_failed': self.filter_result.n_failed,
                'failed_features': self.filter_result.failed_features.tolist(),
            },
            'feature_order': self.feature_order.tolist(),
            'sample_order': self.sample_order,
            'pca': {
                'rank': self.pca.rank,
                'expected_rank': self.pca.expected_rank,
                'total_variance': self.pca.total_variance,
                'explained_variance_ratio': self.pca.explained_variance_ratio.tolist(),
            },
        }


def run_pipeline(
    table: AbundanceTable,
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """
    Run the full compositional pipeline on a raw count table.

    Args:
        table: COUNTS table (samples × features), may contain NaN
        config: Pipeline configuration (defaults if None)

    Returns:
        PipelineResult

    Raises:
        StructuralError: Negative/non-integer entries, all-zero samples
            (when degenerate samples are not dropped, or when none remain),
            or too few features surviving the filter
        DomainError: Replacement fraction too large, or a non-positive
            value reaching the log-ratio step
    """
    if config is None:
        config = PipelineConfig()
    if table.stage is not TableStage.COUNTS:
        raise StructuralError(
            f"pipeline input must be a counts table, got {table.stage.value}",
            stage="pipeline",
        )

    zr = config.zero_replacement
    logger.info(
        f"Running pipeline on {table.n_samples} samples × {table.n_features} features"
    )

    counts, n_missing = normalize_missing(table, require_integer=zr.require_integer)

    report = ZeroPatternAnalyzer().analyze(counts)
    degenerate = report.degenerate_samples
    if degenerate and not zr.drop_degenerate_samples:
        raise StructuralError(
            f"{len(degenerate)} sample(s) have no non-zero counts",
            stage="zero_patterns",
            samples=degenerate,
        )
    counts, dropped = drop_degenerate_samples(counts, report)
    counts, absent = drop_absent_features(counts)

    replacement = ZeroReplacement(delta=zr.delta, max_zero_fraction=zr.max_zero_fraction)
    pseudo = replacement.apply(counts)

    proportions = Closure().apply(pseudo)

    abundance_filter = AbundanceFilter(
        threshold=config.filter.threshold,
        min_features=config.filter.min_features,
    )
    filter_result = abundance_filter.get_filter_result(proportions)
    filtered = abundance_filter.apply(proportions, ordering_basis=pseudo)

    clr_table = CLRTransform().apply(filtered)

    pca = run_pca(clr_table, n_components=config.ordination.n_components)
    distances = aitchison_distances(clr_table)
    dendrogram = ward_clustering(clr_table, distances)

    logger.info(
        f"Pipeline complete: {clr_table.n_samples} samples, "
        f"{clr_table.n_features} features retained, {len(dropped)} samples dropped"
    )

    return PipelineResult(
        counts=counts,
        zero_report=report,
        n_missing_coerced=n_missing,
        dropped_samples=dropped,
        absent_features=absent,
        pseudo_counts=pseudo,
        proportions=proportions,
        filter_result=filter_result,
        filtered=filtered,
        clr=clr_table,
        pca=pca,
        distances=distances,
        dendrogram=dendrogram,
        delta=replacement.resolve_delta(counts.n_features),
        config=config,
    )
