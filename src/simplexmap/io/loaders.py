"""
Loaders for feature tables and sample metadata.

Feature tables are delimited text with one identifier column and one
header row. In the raw form features are rows and samples are columns:

```
feature_id	S1	S2	S3
OTU_1	10	0	6
OTU_2	0	8	NA
OTU_3	5	2	0
```

Entries must be non-negative integers or an NA token. NA cells stay NaN
here; normalize_missing() turns them into zeros as an explicit, counted
pipeline step.

Engineering Design:
    - Fail fast with helpful messages: missing files raise
      FileNotFoundError, malformed tables raise StructuralError naming the
      offending sample/feature
    - One transposition: the raw orientation is converted to samples ×
      features here and nowhere else
    - Identifiers are read as strings (keeps leading zeros, "1" != 1)

Examples:
    >>> from simplexmap.io.loaders import (
    ...     load_feature_table, load_sample_metadata, attach_metadata,
    ... )
    >>> table = load_feature_table("counts.tsv")
    >>> meta = load_sample_metadata("metadata.tsv", sample_col="sample")
    >>> table = attach_metadata(table, meta)
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from simplexmap.core.errors import StructuralError
from simplexmap.core.table import AbundanceTable
from simplexmap.io.formats import NA_VALUES, resolve_delimiter

logger = logging.getLogger(__name__)

__all__ = ['load_feature_table', 'load_sample_metadata', 'attach_metadata']

_MAX_EXAMPLES = 5


def _check_path(path: Path, kind: str) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{kind} file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path


def _header_duplicates(path: Path, sep: str) -> list[str]:
    """Column names repeated in the header row (pandas would rename them)."""
    with open(path, newline="", encoding="utf-8") as f:
        header = next(csv.reader(f, delimiter=sep), [])
    names = [name.strip() for name in header[1:]]
    return sorted({name for name in names if names.count(name) > 1})


def _read_delimited(path: Path, sep: str, index_col) -> pd.DataFrame:
    try:
        return pd.read_csv(
            path,
            sep=sep,
            index_col=index_col,
            dtype=str,
            na_values=NA_VALUES,
            keep_default_na=False,
            skipinitialspace=True,
        )
    except pd.errors.EmptyDataError as e:
        raise StructuralError(f"file is empty: {path}", stage="load") from e
    except pd.errors.ParserError as e:
        raise StructuralError(f"failed to parse {path}: {e}", stage="load") from e


def load_feature_table(
    path: Path,
    delimiter: Optional[str] = None,
    features_as_rows: bool = True,
) -> AbundanceTable:
    """
    Load a delimited count table into a COUNTS AbundanceTable.

    Args:
        path: Path to the table
        delimiter: Column delimiter (sniffed from content if None)
        features_as_rows: True if rows are features and columns samples
            (raw export orientation); False if rows are samples

    Returns:
        COUNTS AbundanceTable (samples × features); NA cells are NaN

    Raises:
        FileNotFoundError: If path does not exist
        StructuralError: Empty table, duplicate identifiers or
            non-numeric entries
    """
    path = _check_path(path, "Feature table")
    sep = resolve_delimiter(path, delimiter)
    df = _read_delimited(path, sep, index_col=0)

    repeated = _header_duplicates(path, sep)
    if repeated:
        axis_name = "sample" if features_as_rows else "feature"
        raise StructuralError(
            f"{len(repeated)} duplicate {axis_name} identifier(s) in {path.name} header",
            stage="load",
            **{f"{axis_name}s": repeated},
        )

    if df.shape[0] == 0 or df.shape[1] == 0:
        raise StructuralError(f"table contains no data: {path}", stage="load")

    df.index = df.index.astype(str).str.strip()
    df.columns = df.columns.astype(str).str.strip()

    # Internal orientation from here on: samples × features
    df = df.T if features_as_rows else df
    df.index.name = "sample_id"
    df.columns.name = "feature_id"

    for axis_name, ids in (("sample", df.index), ("feature", df.columns)):
        if ids.duplicated().any():
            dupes = ids[ids.duplicated()].unique().tolist()
            raise StructuralError(
                f"{len(dupes)} duplicate {axis_name} identifier(s) in {path.name}",
                stage="load",
                **{f"{axis_name}s": dupes},
            )

    numeric = df.apply(pd.to_numeric, errors="coerce")
    bad = numeric.isna() & df.notna()
    if bad.to_numpy().any():
        rows, cols = np.nonzero(bad.to_numpy())
        examples = ", ".join(
            f"{df.index[i]}/{df.columns[j]}={df.iat[i, j]!r}"
            for i, j in zip(rows[:_MAX_EXAMPLES], cols[:_MAX_EXAMPLES])
        )
        raise StructuralError(
            f"{int(bad.to_numpy().sum())} non-numeric entries ({examples})",
            stage="load",
            samples=df.index[np.unique(rows)],
            features=df.columns[np.unique(cols)],
        )

    table = AbundanceTable.from_counts(
        numeric.to_numpy(dtype=float),
        sample_ids=df.index,
        feature_ids=df.columns,
    )

    n_na = int(np.isnan(table.data).sum())
    logger.info(
        f"Loaded {path.name}: {table.n_samples} samples × {table.n_features} features"
        + (f", {n_na} missing entries" if n_na else "")
    )
    return table


def load_sample_metadata(
    path: Path,
    sample_col: Optional[str] = None,
    delimiter: Optional[str] = None,
) -> pd.DataFrame:
    """
    Load per-sample metadata keyed by sample identifier.

    Args:
        path: Path to the metadata table
        sample_col: Column holding sample identifiers (default: first column)
        delimiter: Column delimiter (sniffed if None)

    Returns:
        DataFrame indexed by sample id (string)

    Raises:
        FileNotFoundError: If path does not exist
        StructuralError: Missing identifier column or duplicate sample ids
    """
    path = _check_path(path, "Metadata")
    df = _read_delimited(path, resolve_delimiter(path, delimiter), index_col=None)

    if df.shape[1] == 0:
        raise StructuralError(f"metadata contains no columns: {path}", stage="load")

    if sample_col is None:
        sample_col = df.columns[0]
    elif sample_col not in df.columns:
        raise StructuralError(
            f"sample column '{sample_col}' not in metadata columns {list(df.columns)}",
            stage="load",
        )

    if df[sample_col].isna().any():
        raise StructuralError(
            f"{int(df[sample_col].isna().sum())} metadata rows have no sample id",
            stage="load",
        )

    df[sample_col] = df[sample_col].astype(str).str.strip()
    dupes = df[sample_col][df[sample_col].duplicated()].unique().tolist()
    if dupes:
        raise StructuralError(
            f"{len(dupes)} duplicate sample id(s) in metadata",
            stage="load",
            samples=dupes,
        )

    metadata = df.set_index(sample_col)
    metadata.index.name = "sample_id"
    logger.info(f"Loaded metadata for {len(metadata)} samples ({metadata.shape[1]} columns)")
    return metadata


def attach_metadata(table: AbundanceTable, metadata: pd.DataFrame) -> AbundanceTable:
    """
    Left-join metadata onto a table by sample id.

    Samples without a metadata row get NaN in every column; their number
    is logged as a warning. Metadata rows for unknown samples are ignored.
    """
    aligned = metadata.reindex(table.sample_ids)
    missing = ~table.sample_ids.isin(metadata.index)
    n_missing = int(missing.sum())
    if n_missing:
        logger.warning(
            f"{n_missing}/{table.n_samples} samples have no metadata: "
            + ", ".join(table.sample_ids[missing][:_MAX_EXAMPLES])
        )

    n_extra = int((~metadata.index.isin(table.sample_ids)).sum())
    if n_extra:
        logger.info(f"Ignoring {n_extra} metadata rows for samples not in the table")

    return table.with_metadata(aligned)
