"""
Core data structure for compositional abundance tables.

AbundanceTable unifies the numerical matrix (counts, pseudo-counts,
proportions or log-ratios) with sample annotations, per-value quality
provenance and the pipeline stage the values belong to.

Compositional Context:
    Microbiome feature tables carry only relative information. The same
    matrix moves through several geometries on its way to ordination:
    - COUNTS: raw non-negative integers (may contain zeros)
    - PSEUDO_COUNTS: zeros replaced, strictly positive
    - PROPORTIONS: each sample closed to sum 1
    - FILTERED_PROPORTIONS: rare features removed, canonical feature order fixed
    - CLR: centered log-ratio coordinates (rows sum to zero)

    Tagging each table with its stage lets every transform check that it is
    handed the geometry it expects instead of silently operating on the
    wrong one.

Indexing Convention:
    Rows = samples, columns = features. Files that store features as rows
    are transposed exactly once, by the loader.

Engineering Design:
    - Immutable: Operations return new instances (functional style)
    - Type-safe: NumPy arrays for data, Pandas for identifiers and metadata
    - Validated: Constructor checks shape and index consistency
    - Canonical feature order is a field, so consumers reuse it instead of
      re-deriving it

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from simplexmap.core.table import AbundanceTable, TableStage
    >>>
    >>> table = AbundanceTable.from_counts(
    ...     np.array([[10, 0, 5], [0, 8, 2]]),
    ...     sample_ids=["S1", "S2"],
    ...     feature_ids=["OTU1", "OTU2", "OTU3"],
    ... )
    >>> table.stage
    <TableStage.COUNTS: 'counts'>
    >>> table.select_features(np.array([True, False, True])).feature_ids.tolist()
    ['OTU1', 'OTU3']
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from simplexmap.core.quality import QualityFlag

__all__ = ['AbundanceTable', 'TableStage']


class TableStage(Enum):
    """Geometry the values of an AbundanceTable live in."""
    COUNTS = "counts"
    PSEUDO_COUNTS = "pseudo_counts"
    PROPORTIONS = "proportions"
    FILTERED_PROPORTIONS = "filtered_proportions"
    CLR = "clr"


class AbundanceTable:
    """
    Immutable container for an abundance matrix + sample metadata + quality flags.

    Attributes:
        data: Numerical matrix (samples × features)
        sample_ids: Row identifiers
        feature_ids: Column identifiers (OTUs, taxa, ASVs)
        sample_metadata: Sample annotations (grouping variables, etc.)
        quality_flags: Per-value QualityFlag provenance
        stage: TableStage of the values
        feature_order: Canonical feature order, or None before filtering

    Shape Invariants:
        - data.shape[0] == len(sample_ids)
        - data.shape[1] == len(feature_ids)
        - quality_flags.shape == data.shape
        - sample_metadata.index equals sample_ids
        - feature_order, if set, is a permutation of feature_ids
    """

    def __init__(
        self,
        data: np.ndarray,
        sample_ids: pd.Index,
        feature_ids: pd.Index,
        sample_metadata: pd.DataFrame,
        quality_flags: np.ndarray,
        stage: TableStage = TableStage.COUNTS,
        feature_order: Optional[pd.Index] = None,
    ):
        """
        Initialize AbundanceTable with validation.

        Raises:
            TypeError: If components have the wrong types
            ValueError: If shapes are inconsistent or indices don't match
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")
        if not isinstance(feature_ids, pd.Index):
            raise TypeError(f"feature_ids must be pd.Index, got {type(feature_ids)}")
        if not isinstance(sample_metadata, pd.DataFrame):
            raise TypeError(f"sample_metadata must be pd.DataFrame, got {type(sample_metadata)}")
        if not isinstance(quality_flags, np.ndarray):
            raise TypeError(f"quality_flags must be np.ndarray, got {type(quality_flags)}")
        if not isinstance(stage, TableStage):
            raise TypeError(f"stage must be TableStage, got {type(stage)}")

        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        n_samples, n_features = data.shape

        if len(sample_ids) != n_samples:
            raise ValueError(
                f"sample_ids length ({len(sample_ids)}) must match data rows ({n_samples})"
            )
        if len(feature_ids) != n_features:
            raise ValueError(
                f"feature_ids length ({len(feature_ids)}) must match data columns ({n_features})"
            )
        if quality_flags.shape != data.shape:
            raise ValueError(
                f"quality_flags shape {quality_flags.shape} must match data shape {data.shape}"
            )
        if not sample_metadata.index.equals(sample_ids):
            raise ValueError(
                "sample_metadata.index must match sample_ids exactly. "
                f"Got {len(sample_metadata.index)} metadata rows for {len(sample_ids)} samples."
            )
        if feature_order is not None:
            if not isinstance(feature_order, pd.Index):
                raise TypeError(f"feature_order must be pd.Index, got {type(feature_order)}")
            if len(feature_order) != n_features or not feature_order.sort_values().equals(
                feature_ids.sort_values()
            ):
                raise ValueError("feature_order must be a permutation of feature_ids")

        self._data = data
        self._sample_ids = sample_ids
        self._feature_ids = feature_ids
        self._sample_metadata = sample_metadata
        self._quality_flags = quality_flags
        self._stage = stage
        self._feature_order = feature_order

    @classmethod
    def from_counts(
        cls,
        counts,
        sample_ids: Sequence,
        feature_ids: Sequence,
        sample_metadata: Optional[pd.DataFrame] = None,
    ) -> AbundanceTable:
        """
        Build a COUNTS table from a samples × features array-like.

        NaN entries are kept as-is; use normalize_missing() to coerce them.
        """
        data = np.asarray(counts, dtype=float)
        sample_index = pd.Index([str(s) for s in sample_ids])
        feature_index = pd.Index([str(f) for f in feature_ids])
        if sample_metadata is None:
            sample_metadata = pd.DataFrame(index=sample_index)
        return cls(
            data=data,
            sample_ids=sample_index,
            feature_ids=feature_index,
            sample_metadata=sample_metadata,
            quality_flags=np.full(data.shape, QualityFlag.ORIGINAL, dtype=int),
            stage=TableStage.COUNTS,
        )

    @property
    def data(self) -> np.ndarray:
        """Abundance matrix (samples × features)."""
        return self._data

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def feature_ids(self) -> pd.Index:
        return self._feature_ids

    @property
    def sample_metadata(self) -> pd.DataFrame:
        return self._sample_metadata

    @property
    def quality_flags(self) -> np.ndarray:
        return self._quality_flags

    @property
    def stage(self) -> TableStage:
        return self._stage

    @property
    def feature_order(self) -> Optional[pd.Index]:
        """Canonical feature order fixed by the abundance filter (None before)."""
        return self._feature_order

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_samples, n_features)."""
        return self._data.shape

    @property
    def n_samples(self) -> int:
        return self._data.shape[0]

    @property
    def n_features(self) -> int:
        return self._data.shape[1]

    def with_data(
        self,
        data: np.ndarray,
        stage: TableStage,
        quality_flags: Optional[np.ndarray] = None,
        feature_order: Optional[pd.Index] = None,
    ) -> AbundanceTable:
        """
        Return a new table with replaced values and stage.

        Identifiers and metadata are shared; the feature order carries over
        unless a new one is given.
        """
        return AbundanceTable(
            data=data,
            sample_ids=self._sample_ids,
            feature_ids=self._feature_ids,
            sample_metadata=self._sample_metadata,
            quality_flags=self._quality_flags.copy() if quality_flags is None else quality_flags,
            stage=stage,
            feature_order=self._feature_order if feature_order is None else feature_order,
        )

    def with_metadata(self, sample_metadata: pd.DataFrame) -> AbundanceTable:
        """Return a new table with replaced sample metadata (index must match)."""
        return AbundanceTable(
            data=self._data,
            sample_ids=self._sample_ids,
            feature_ids=self._feature_ids,
            sample_metadata=sample_metadata,
            quality_flags=self._quality_flags,
            stage=self._stage,
            feature_order=self._feature_order,
        )

    def select_samples(self, mask: np.ndarray | pd.Series) -> AbundanceTable:
        """
        Subset table by samples (rows).

        Args:
            mask: Boolean array/Series indicating which samples to keep.
                If Series, uses values and ignores index.

        Raises:
            ValueError: If mask length doesn't match n_samples
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_samples:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_samples ({self.n_samples})"
            )

        kept = self._sample_ids[mask]
        return AbundanceTable(
            data=self._data[mask, :],
            sample_ids=kept,
            feature_ids=self._feature_ids,
            sample_metadata=self._sample_metadata.loc[kept],
            quality_flags=self._quality_flags[mask, :],
            stage=self._stage,
            feature_order=self._feature_order,
        )

    def select_features(self, mask: np.ndarray | pd.Series) -> AbundanceTable:
        """
        Subset table by features (columns).

        A canonical feature order, if present, is restricted to the kept
        features without changing their relative order.

        Raises:
            ValueError: If mask length doesn't match n_features
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_features:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_features ({self.n_features})"
            )

        kept = self._feature_ids[mask]
        order = None
        if self._feature_order is not None:
            order = self._feature_order[self._feature_order.isin(kept)]
        return AbundanceTable(
            data=self._data[:, mask],
            sample_ids=self._sample_ids,
            feature_ids=kept,
            sample_metadata=self._sample_metadata,
            quality_flags=self._quality_flags[:, mask],
            stage=self._stage,
            feature_order=order,
        )

    def reorder_features(self, order: Sequence) -> AbundanceTable:
        """
        Return a new table whose columns follow `order`.

        Args:
            order: Permutation of feature_ids

        Raises:
            KeyError: If order names a feature not in the table
            ValueError: If order is not a permutation of feature_ids
        """
        order = pd.Index(order)
        if len(order) != self.n_features or order.has_duplicates:
            raise ValueError("order must be a permutation of feature_ids")
        positions = self._feature_ids.get_indexer(order)
        if (positions < 0).any():
            missing = order[positions < 0].tolist()
            raise KeyError(f"Unknown feature ids in order: {missing}")
        return AbundanceTable(
            data=self._data[:, positions],
            sample_ids=self._sample_ids,
            feature_ids=self._feature_ids[positions],
            sample_metadata=self._sample_metadata,
            quality_flags=self._quality_flags[:, positions],
            stage=self._stage,
            feature_order=self._feature_order,
        )

    def to_frame(self) -> pd.DataFrame:
        """Values as a DataFrame (samples × features)."""
        # Index copies: renaming the frame axes must not rename the table ids
        return pd.DataFrame(self._data, index=self._sample_ids.copy(), columns=self._feature_ids.copy())

    def flags_frame(self) -> pd.DataFrame:
        """Quality flags as a DataFrame (samples × features)."""
        return pd.DataFrame(
            self._quality_flags, index=self._sample_ids.copy(), columns=self._feature_ids.copy()
        )

    def copy(self, deep: bool = True) -> AbundanceTable:
        """
        Create a copy of this table.

        Args:
            deep: If True, copy all arrays. If False, share arrays.
        """
        if deep:
            return AbundanceTable(
                data=self._data.copy(),
                sample_ids=self._sample_ids.copy(),
                feature_ids=self._feature_ids.copy(),
                sample_metadata=self._sample_metadata.copy(),
                quality_flags=self._quality_flags.copy(),
                stage=self._stage,
                feature_order=None if self._feature_order is None else self._feature_order.copy(),
            )
        return AbundanceTable(
            data=self._data,
            sample_ids=self._sample_ids,
            feature_ids=self._feature_ids,
            sample_metadata=self._sample_metadata,
            quality_flags=self._quality_flags,
            stage=self._stage,
            feature_order=self._feature_order,
        )

    def __repr__(self) -> str:
        if self.n_samples == 0 or self.n_features == 0:
            return f"AbundanceTable({self.n_samples} samples × {self.n_features} features, {self.stage.value})"
        return (
            f"AbundanceTable({self.n_samples} samples × {self.n_features} features, {self.stage.value})\n"
            f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}\n"
            f"  Features: {self.feature_ids[0]}...{self.feature_ids[-1]}\n"
            f"  Metadata columns: {list(self.sample_metadata.columns)}"
        )

    def __str__(self) -> str:
        return self.__repr__()
