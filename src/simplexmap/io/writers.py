"""
TSV writers for pipeline results.

Every run writes its tables side by side with a parameters.json
provenance record, so a result directory can be re-read by R, Excel or
pandas without the package:

    proportions_filtered.tsv   samples × features, canonical feature order
    clr.tsv                    samples × features, canonical feature order
    quality_flags.tsv          QualityFlag integers aligned with clr.tsv
    zero_patterns.tsv          per-sample zero pattern keys (before removal)
    pca_scores.tsv             samples × PC1..PCk
    pca_loadings.tsv           features × PC1..PCk
    pca_variance.tsv           explained variance per component
    aitchison_distance.tsv     samples × samples
    ward_linkage.tsv           one row per merge
    leaf_order.tsv             samples in dendrogram leaf order
    parameters.json            configuration, effective parameters, orders

Tables are written with pandas; parameters.json is written atomically
(temp file + os.replace).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, TYPE_CHECKING

import pandas as pd

from simplexmap.utils.fileio import atomic_write_json

if TYPE_CHECKING:
    from simplexmap.pipeline import PipelineResult

logger = logging.getLogger(__name__)

__all__ = ['write_table', 'write_pipeline_outputs', 'write_differential_results']


def write_table(frame: pd.DataFrame, path: Path, index: bool = True) -> Path:
    """
    Write a DataFrame as TSV, creating parent directories.

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        frame.to_csv(path, sep="\t", index=index)
    except OSError as e:
        raise OSError(f"Failed to write {path}: {e}") from e
    logger.debug(f"Wrote {path}")
    return path


def write_pipeline_outputs(result: PipelineResult, outdir: Path) -> Dict[str, Path]:
    """
    Write every pipeline output table plus parameters.json into `outdir`.

    Returns:
        Mapping of output name -> written path
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    order = result.feature_order
    filtered = result.filtered.reorder_features(order)
    leaves = result.dendrogram

    tables = {
        'proportions_filtered': filtered.to_frame(),
        'clr': result.clr.to_frame(),
        'quality_flags': result.clr.flags_frame(),
        'zero_patterns': result.zero_report.to_frame(),
        'pca_scores': result.pca.scores,
        'pca_loadings': result.pca.loadings,
        'pca_variance': result.pca.variance_frame(),
        'aitchison_distance': result.distances,
        'ward_linkage': leaves.to_frame(),
        'leaf_order': pd.DataFrame({
            'sample_id': leaves.leaf_labels,
            'input_index': leaves.leaf_order,
        }, index=pd.RangeIndex(1, len(leaves.leaf_order) + 1, name='position')),
    }

    written: Dict[str, Path] = {}
    for name, frame in tables.items():
        written[name] = write_table(frame, outdir / f"{name}.tsv")

    params_path = outdir / "parameters.json"
    atomic_write_json(params_path, result.parameters_dict())
    written['parameters'] = params_path

    logger.info(f"Wrote {len(written)} output files to {outdir}")
    return written


def write_differential_results(frame: pd.DataFrame, path: Path) -> Path:
    """Write a compare_groups() result table as TSV."""
    path = write_table(frame, path)
    logger.info(f"Wrote differential results ({len(frame)} features) to {path}")
    return path
