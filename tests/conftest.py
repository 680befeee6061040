"""
Pytest configuration and shared fixtures.

This module provides synthetic sparse count tables and file helpers used
across the test suites.
"""

import numpy as np
import pandas as pd
import pytest
from pathlib import Path

from simplexmap.core.table import AbundanceTable


# Worked example: 4 samples × 3 features with scattered zeros
SCENARIO_COUNTS = np.array([
    [10, 0, 5],
    [0, 8, 2],
    [6, 6, 0],
    [1, 1, 1],
])


def generate_sparse_counts(
    n_samples: int = 30,
    n_features: int = 40,
    zero_fraction: float = 0.3,
    group_effect: float = 0.0,
    n_shifted: int = 5,
    seed: int = 42,
) -> AbundanceTable:
    """
    Generate a synthetic sparse count table with realistic properties.

    Args:
        n_samples: Number of samples (rows)
        n_features: Number of features (columns)
        zero_fraction: Fraction of cells forced to zero
        group_effect: Log fold change applied to the first n_shifted
            features in group "B"
        n_shifted: Number of features carrying the group effect
        seed: Random seed for reproducibility

    Returns:
        COUNTS AbundanceTable with a 'group' metadata column (A/B alternating)

    Design:
        - Log-normal feature means (a few dominant taxa, a long tail)
        - Per-sample sequencing depth varies 4-fold
        - Zeros injected at random, but every sample keeps its most
          abundant feature so no sample is all-zero
    """
    rng = np.random.default_rng(seed)

    feature_means = rng.lognormal(mean=4.0, sigma=1.5, size=n_features)
    depth = rng.uniform(0.5, 2.0, size=(n_samples, 1))
    means = feature_means[None, :] * depth

    groups = np.array(["A" if i % 2 == 0 else "B" for i in range(n_samples)])
    if group_effect:
        means[groups == "B", :n_shifted] *= np.exp(group_effect)

    counts = rng.poisson(means).astype(float)
    zero_mask = rng.random((n_samples, n_features)) < zero_fraction
    zero_mask[:, int(np.argmax(feature_means))] = False
    counts[zero_mask] = 0
    counts[:, int(np.argmax(feature_means))] += 1

    sample_ids = [f"S{i:03d}" for i in range(n_samples)]
    feature_ids = [f"OTU_{j:03d}" for j in range(n_features)]
    metadata = pd.DataFrame({'group': groups}, index=pd.Index(sample_ids))

    return AbundanceTable.from_counts(counts, sample_ids, feature_ids, sample_metadata=metadata)


def write_counts_tsv(
    table: AbundanceTable,
    path: Path,
    features_as_rows: bool = True,
    sep: str = "\t",
) -> Path:
    """Write a COUNTS table in the raw file layout (features as rows by default)."""
    frame = table.to_frame()
    frame = frame.T if features_as_rows else frame
    frame.index.name = "feature_id" if features_as_rows else "sample_id"
    frame.to_csv(path, sep=sep, na_rep="NA", float_format="%.0f")
    return path


@pytest.fixture
def scenario_table():
    """The 4 × 3 worked example as a COUNTS table."""
    return AbundanceTable.from_counts(
        SCENARIO_COUNTS,
        sample_ids=["S1", "S2", "S3", "S4"],
        feature_ids=["A", "B", "C"],
    )


@pytest.fixture
def sparse_table():
    """Sparse table (30 samples × 40 features) for unit tests."""
    return generate_sparse_counts(n_samples=30, n_features=40, seed=42)


@pytest.fixture
def grouped_table():
    """Sparse table with a strong group effect on the first 5 features."""
    return generate_sparse_counts(
        n_samples=40, n_features=30, zero_fraction=0.2, group_effect=2.0, seed=7
    )


@pytest.fixture
def rare_feature_table():
    """
    Table with one feature ("RARE") that is never zero but always tiny.

    Its proportion stays around 2e-5 in every sample, below the default
    threshold of 1e-4.
    """
    counts = np.array([
        [50000, 30000, 20000, 1],
        [40000, 45000, 15000, 2],
        [10000, 60000, 30000, 1],
        [35000, 35000, 30000, 2],
    ])
    return AbundanceTable.from_counts(
        counts,
        sample_ids=["S1", "S2", "S3", "S4"],
        feature_ids=["ALPHA", "BETA", "GAMMA", "RARE"],
    )


@pytest.fixture
def counts_file(tmp_path, sparse_table):
    """Sparse table written as a features-as-rows TSV."""
    return write_counts_tsv(sparse_table, tmp_path / "counts.tsv")


@pytest.fixture
def metadata_file(tmp_path, sparse_table):
    """Metadata TSV for sparse_table (sample, group)."""
    path = tmp_path / "metadata.tsv"
    meta = sparse_table.sample_metadata.copy()
    meta.index.name = "sample"
    meta.to_csv(path, sep="\t")
    return path
