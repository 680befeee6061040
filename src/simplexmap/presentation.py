"""
Plotting-ready frames for the four standard views of a pipeline run.

Nothing here renders. Each builder returns a tidy pandas DataFrame that a
plotting library can consume directly:

    stacked_bar_frame  -> stacked bars of filtered proportions per sample
    ordination_frame   -> PCA scatter, coloured by a metadata group
    scree_frame        -> explained variance per component
    dendrogram_frame   -> merge table of the Ward dendrogram

Ordering:
    Orders are read from the pipeline result, never recomputed. Features
    follow the canonical feature order of the filtered table (legend
    order); samples follow the dendrogram leaf order. Both are encoded as
    ordered categoricals so plotting libraries keep them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, TYPE_CHECKING

import pandas as pd

from simplexmap.core.errors import StructuralError
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.ordination import Dendrogram, PCAResult

if TYPE_CHECKING:
    from simplexmap.pipeline import PipelineResult

__all__ = [
    'stacked_bar_frame',
    'ordination_frame',
    'scree_frame',
    'dendrogram_frame',
    'PresentationBundle',
    'build_presentation',
]


def stacked_bar_frame(
    filtered: AbundanceTable,
    sample_order: Optional[Sequence[str]] = None,
    dendrogram: Optional[Dendrogram] = None,
) -> pd.DataFrame:
    """
    Long (sample, feature, proportion) frame for stacked-bar rendering.

    Args:
        filtered: FILTERED_PROPORTIONS table with a canonical feature order
        sample_order: Explicit sample order; takes precedence
        dendrogram: If given and sample_order is None, its leaf order is used.
            Without either, samples keep table order.

    Raises:
        StructuralError: If the table is not filtered proportions
        ValueError: If sample_order is not a permutation of the table's samples
    """
    if filtered.stage is not TableStage.FILTERED_PROPORTIONS or filtered.feature_order is None:
        raise StructuralError(
            "stacked bars need a filtered proportion table with a canonical feature order",
            stage="presentation",
        )

    if sample_order is None:
        sample_order = dendrogram.leaf_labels if dendrogram is not None else filtered.sample_ids
    sample_order = pd.Index([str(s) for s in sample_order])
    if len(sample_order) != filtered.n_samples or not sample_order.sort_values().equals(
        filtered.sample_ids.sort_values()
    ):
        raise ValueError("sample_order must be a permutation of the table's sample ids")

    feature_order = filtered.feature_order
    wide = filtered.reorder_features(feature_order).to_frame()
    wide.index.name = 'sample'
    wide.columns.name = None
    long = wide.reset_index().melt(id_vars='sample', var_name='feature', value_name='proportion')

    long['sample'] = pd.Categorical(long['sample'], categories=sample_order, ordered=True)
    long['feature'] = pd.Categorical(long['feature'], categories=feature_order, ordered=True)
    return long.sort_values(['sample', 'feature'], kind='mergesort').reset_index(drop=True)


def ordination_frame(
    pca: PCAResult,
    metadata: Optional[pd.DataFrame] = None,
    group_col: Optional[str] = None,
    components: Sequence[int] = (1, 2),
) -> pd.DataFrame:
    """
    PCA scores for selected components joined to per-sample group labels.

    Args:
        pca: PCAResult
        metadata: Sample metadata indexed by sample id
        group_col: Column of metadata to use as the group label
        components: 1-based component numbers (x and y axes)

    Returns:
        DataFrame with columns sample, one PC<c> per component and (if
        group_col) group; samples without metadata get a NaN group.

    Raises:
        ValueError: If a component is out of range
        KeyError: If group_col is not in metadata
    """
    for c in components:
        if not (1 <= c <= pca.n_components):
            raise ValueError(f"component {c} out of range 1..{pca.n_components}")
    columns = [f"PC{c}" for c in components]

    frame = pca.scores[columns].copy()
    frame.index.name = 'sample'

    if group_col is not None:
        if metadata is None or group_col not in metadata.columns:
            raise KeyError(f"group column '{group_col}' not found in sample metadata")
        frame['group'] = metadata[group_col].reindex(frame.index)

    return frame.reset_index()


def scree_frame(pca: PCAResult) -> pd.DataFrame:
    """Component, explained variance, ratio and cumulative ratio."""
    frame = pca.variance_frame().reset_index()
    return frame[['component', 'explained_variance', 'explained_variance_ratio', 'cumulative_ratio']]


def dendrogram_frame(dendrogram: Dendrogram) -> pd.DataFrame:
    """One row per merge: left, right, height, size."""
    return dendrogram.to_frame().reset_index()


@dataclass
class PresentationBundle:
    """All presentation frames of one pipeline run."""
    stacked_bar: pd.DataFrame
    ordination: pd.DataFrame
    scree: pd.DataFrame
    dendrogram: pd.DataFrame
    feature_order: list[str]
    sample_order: list[str]


def build_presentation(result: PipelineResult, group_col: Optional[str] = None) -> PresentationBundle:
    """
    Build every presentation frame from a PipelineResult.

    Group labels come from the sample metadata attached to the input table.
    """
    metadata = result.clr.sample_metadata
    components = (1, 2) if result.pca.n_components >= 2 else (1,)
    return PresentationBundle(
        stacked_bar=stacked_bar_frame(result.filtered, dendrogram=result.dendrogram),
        ordination=ordination_frame(result.pca, metadata, group_col, components=components),
        scree=scree_frame(result.pca),
        dendrogram=dendrogram_frame(result.dendrogram),
        feature_order=result.feature_order.tolist(),
        sample_order=result.sample_order,
    )
