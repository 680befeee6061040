"""
Aitchison distances and Ward hierarchical clustering of samples.

Euclidean distance between CLR rows is the Aitchison distance between the
underlying compositions. Samples are clustered agglomeratively with Ward's
minimum-variance linkage on that distance matrix, and the dendrogram leaf
order becomes the canonical sample order for ordered displays.

Determinism and Ties:
    scipy.cluster.hierarchy.linkage is deterministic for a fixed input
    order, but it emits merges at equal height in nearest-neighbour-chain
    discovery order. ward_clustering rewrites the merge table so that ties
    follow one explicit rule:

    1. Merge heights are grouped into tie runs: consecutive sorted heights
       within TIE_RTOL (relative) of the first height of the run.
    2. Within a run, a merge is ready once both children exist. Among
       ready merges, the one whose lowest original sample index is
       smallest goes first.
    3. Cluster ids are reassigned as n + row in the rewritten table, and
       each row lists its smaller child id first.

    Leaf order is read from the rewritten table, so the canonical sample
    order depends only on the distance matrix and the input sample order.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import pdist, squareform

from simplexmap.core.errors import NumericalDegeneracyWarning, StructuralError
from simplexmap.core.table import AbundanceTable, TableStage

logger = logging.getLogger(__name__)

__all__ = ['Dendrogram', 'aitchison_distances', 'ward_clustering']

LINKAGE_METHOD = "ward"
TIE_RTOL = 1e-12


@dataclass
class Dendrogram:
    """
    Binary merge tree over samples.

    Attributes:
        linkage: scipy linkage matrix, shape (n - 1, 4):
            [left cluster, right cluster, merge height, cluster size]
        sample_ids: Samples in original (input) order
        leaf_order: Permutation of sample indices in dendrogram leaf order
        method: Linkage rule
    """
    linkage: np.ndarray
    sample_ids: pd.Index
    leaf_order: np.ndarray
    method: str = LINKAGE_METHOD

    @property
    def merge_heights(self) -> np.ndarray:
        return self.linkage[:, 2]

    @property
    def leaf_labels(self) -> list[str]:
        """Sample ids in leaf order."""
        return self.sample_ids[self.leaf_order].tolist()

    def to_frame(self) -> pd.DataFrame:
        """One row per merge: left, right, height, size."""
        return pd.DataFrame({
            'left': self.linkage[:, 0].astype(int),
            'right': self.linkage[:, 1].astype(int),
            'height': self.linkage[:, 2],
            'size': self.linkage[:, 3].astype(int),
        }, index=pd.RangeIndex(1, len(self.linkage) + 1, name='merge'))


def _order_tied_merges(merges: np.ndarray, n_samples: int) -> np.ndarray:
    """Reorder merges at equal height by lowest original member index."""
    n_merges = len(merges)
    lowest = np.arange(n_samples + n_merges)
    for row in range(n_merges):
        left, right = int(merges[row, 0]), int(merges[row, 1])
        lowest[n_samples + row] = min(lowest[left], lowest[right])

    heights = merges[:, 2]
    order: list[int] = []
    placed: set[int] = set()
    start = 0
    while start < n_merges:
        stop = start + 1
        while stop < n_merges and heights[stop] - heights[start] <= TIE_RTOL * abs(heights[start]):
            stop += 1

        pending = list(range(start, stop))
        while pending:
            ready = [
                row for row in pending
                if all(c < n_samples or c - n_samples in placed
                       for c in (int(merges[row, 0]), int(merges[row, 1])))
            ]
            row = min(ready, key=lambda r: lowest[n_samples + r])
            order.append(row)
            placed.add(row)
            pending.remove(row)
        start = stop

    relabel = {i: i for i in range(n_samples)}
    rewritten = np.empty_like(merges)
    for new_row, old_row in enumerate(order):
        left = relabel[int(merges[old_row, 0])]
        right = relabel[int(merges[old_row, 1])]
        rewritten[new_row] = [min(left, right), max(left, right),
                              merges[old_row, 2], merges[old_row, 3]]
        relabel[n_samples + old_row] = n_samples + new_row
    return rewritten


def _require_clr(table: AbundanceTable, stage: str) -> None:
    if table.stage is not TableStage.CLR:
        raise StructuralError(
            f"expected a clr table, got {table.stage.value}", stage=stage
        )


def aitchison_distances(table: AbundanceTable) -> pd.DataFrame:
    """
    Pairwise Euclidean distances between CLR rows.

    Returns:
        Square DataFrame indexed and columned by sample id; exactly
        symmetric with a zero diagonal.
    """
    _require_clr(table, "distance")
    condensed = pdist(table.data, metric="euclidean")
    square = squareform(condensed, checks=False)
    return pd.DataFrame(square, index=table.sample_ids, columns=table.sample_ids)


def ward_clustering(
    table: AbundanceTable,
    distances: Optional[pd.DataFrame] = None,
) -> Dendrogram:
    """
    Ward's minimum-variance agglomerative clustering of CLR samples.

    Args:
        table: CLR table
        distances: Precomputed aitchison_distances(table); computed if None

    Raises:
        StructuralError: If the table is not CLR, has fewer than 2 samples,
            or the distance matrix does not match its samples
    """
    _require_clr(table, "clustering")
    if table.n_samples < 2:
        raise StructuralError("clustering needs at least 2 samples", stage="clustering",
                              samples=table.sample_ids)

    if distances is None:
        distances = aitchison_distances(table)
    elif not (distances.index.equals(table.sample_ids)
              and distances.columns.equals(table.sample_ids)):
        raise StructuralError("distance matrix does not match table samples",
                              stage="clustering")

    condensed = squareform(distances.to_numpy(), checks=False)

    n_duplicates = int(np.sum(condensed == 0))
    if n_duplicates:
        rows, cols = np.nonzero(np.triu(distances.to_numpy() == 0, k=1))
        pairs = ", ".join(
            f"{table.sample_ids[i]}/{table.sample_ids[j]}" for i, j in zip(rows[:5], cols[:5])
        )
        message = (
            f"{n_duplicates} sample pair(s) at zero Aitchison distance "
            f"(identical compositions): {pairs}"
        )
        logger.warning(message)
        warnings.warn(message, NumericalDegeneracyWarning, stacklevel=2)

    merges = _order_tied_merges(linkage(condensed, method=LINKAGE_METHOD), table.n_samples)
    order = leaves_list(merges)

    logger.info(
        f"Ward clustering: {table.n_samples} samples, "
        f"max merge height {merges[:, 2].max():.3f}"
    )

    return Dendrogram(linkage=merges, sample_ids=table.sample_ids, leaf_order=order)
