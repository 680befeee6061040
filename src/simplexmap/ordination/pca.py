"""
Principal component analysis of CLR coordinates.

PCA is computed by singular value decomposition of the column-centered CLR
matrix rather than by eigendecomposition of an explicitly formed
covariance matrix. CLR rows sum to zero, so the data live in a hyperplane
and the covariance matrix is singular by construction; SVD handles this
rank deficiency without inverting anything.

Rank Expectations:
    With n samples and D features, column centering removes one dimension
    and the CLR zero-sum constraint removes another, so at most
    min(n - 1, D - 1) components carry variance. A numerical rank below
    that means more degeneracy than the geometry explains (duplicate
    samples, collinear features) and is reported with a
    NumericalDegeneracyWarning. Results are returned as computed.

Sign Convention:
    Component signs are arbitrary. For reproducible output each component
    is flipped so that its largest-magnitude loading is positive.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from simplexmap.core.errors import NumericalDegeneracyWarning, StructuralError
from simplexmap.core.table import AbundanceTable, TableStage

logger = logging.getLogger(__name__)

__all__ = ['PCAResult', 'run_pca']


@dataclass
class PCAResult:
    """
    Principal components of a CLR table.

    Attributes:
        scores: Sample coordinates (samples × components)
        loadings: Feature weights (features × components), unit-norm columns
        explained_variance: Variance per component (ddof=1), descending
        explained_variance_ratio: explained_variance / total_variance
        singular_values: Singular values of the centered matrix
        total_variance: Sum of per-feature variances of the CLR matrix
        rank: Numerical rank of the centered matrix
        expected_rank: min(n_samples - 1, n_features - 1)
    """
    scores: pd.DataFrame
    loadings: pd.DataFrame
    explained_variance: np.ndarray
    explained_variance_ratio: np.ndarray
    singular_values: np.ndarray
    total_variance: float
    rank: int
    expected_rank: int

    @property
    def components(self) -> list[str]:
        return list(self.scores.columns)

    @property
    def n_components(self) -> int:
        return self.scores.shape[1]

    @property
    def is_degenerate(self) -> bool:
        return self.rank < self.expected_rank

    def variance_frame(self) -> pd.DataFrame:
        """Explained variance table (one row per component)."""
        return pd.DataFrame({
            'explained_variance': self.explained_variance,
            'explained_variance_ratio': self.explained_variance_ratio,
            'cumulative_ratio': np.cumsum(self.explained_variance_ratio),
            'singular_value': self.singular_values,
        }, index=pd.Index(self.components, name='component'))


def _flip_signs(u: np.ndarray, vt: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Make the largest-magnitude loading of each component positive."""
    anchors = np.argmax(np.abs(vt), axis=1)
    signs = np.sign(vt[np.arange(vt.shape[0]), anchors])
    signs[signs == 0] = 1.0
    return u * signs, vt * signs[:, None]


def run_pca(table: AbundanceTable, n_components: Optional[int] = None) -> PCAResult:
    """
    PCA of a CLR table via SVD of the column-centered matrix.

    Args:
        table: CLR table (samples × features)
        n_components: Number of components to keep (default: all,
            i.e. min(n_samples, n_features))

    Returns:
        PCAResult with components ordered by descending explained variance

    Raises:
        StructuralError: If the table is not CLR or has fewer than 2 samples
        ValueError: If n_components is out of range
    """
    if table.stage is not TableStage.CLR:
        raise StructuralError(
            f"PCA expects a clr table, got {table.stage.value}", stage="pca"
        )
    n_samples, n_features = table.shape
    if n_samples < 2:
        raise StructuralError("PCA needs at least 2 samples", stage="pca",
                              samples=table.sample_ids)

    max_components = min(n_samples, n_features)
    if n_components is None:
        n_components = max_components
    if not (1 <= n_components <= max_components):
        raise ValueError(
            f"n_components must be in [1, {max_components}], got {n_components}"
        )

    centered = table.data - table.data.mean(axis=0, keepdims=True)
    u, s, vt = np.linalg.svd(centered, full_matrices=False)
    u, vt = _flip_signs(u, vt)

    explained_variance = s ** 2 / (n_samples - 1)
    total_variance = float(centered.var(axis=0, ddof=1).sum())
    if total_variance > 0:
        ratio = explained_variance / total_variance
    else:
        ratio = np.zeros_like(explained_variance)

    tol = s.max() * max(n_samples, n_features) * np.finfo(float).eps if s.size else 0.0
    rank = int(np.sum(s > tol)) if s.size and s.max() > 0 else 0
    expected_rank = min(n_samples - 1, n_features - 1)

    if rank < expected_rank:
        message = (
            f"CLR matrix has numerical rank {rank}, expected {expected_rank} "
            f"for {n_samples} samples × {n_features} features"
        )
        logger.warning(message)
        warnings.warn(message, NumericalDegeneracyWarning, stacklevel=2)

    names = [f"PC{i + 1}" for i in range(n_components)]
    scores = pd.DataFrame(
        u[:, :n_components] * s[:n_components],
        index=table.sample_ids,
        columns=names,
    )
    loadings = pd.DataFrame(
        vt[:n_components].T,
        index=table.feature_ids,
        columns=names,
    )

    head = ", ".join(
        f"{name}={100 * r:.1f}%" for name, r in zip(names[:3], ratio[:3])
    )
    logger.info(f"PCA: rank {rank}/{expected_rank}, explained variance {head}")

    return PCAResult(
        scores=scores,
        loadings=loadings,
        explained_variance=explained_variance[:n_components],
        explained_variance_ratio=ratio[:n_components],
        singular_values=s[:n_components],
        total_variance=total_variance,
        rank=rank,
        expected_rank=expected_rank,
    )
