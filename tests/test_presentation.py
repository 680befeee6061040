"""
Tests for plotting-ready presentation frames.
"""

import numpy as np
import pandas as pd
import pytest

from simplexmap.core import StructuralError
from simplexmap.pipeline import run_pipeline
from simplexmap.presentation import (
    build_presentation,
    dendrogram_frame,
    ordination_frame,
    scree_frame,
    stacked_bar_frame,
)


@pytest.fixture
def grouped_result(grouped_table):
    return run_pipeline(grouped_table)


class TestStackedBarFrame:

    def test_long_format_in_canonical_orders(self, grouped_result):
        frame = stacked_bar_frame(grouped_result.filtered, dendrogram=grouped_result.dendrogram)
        n_samples, n_features = grouped_result.filtered.shape

        assert list(frame.columns) == ['sample', 'feature', 'proportion']
        assert len(frame) == n_samples * n_features
        assert list(frame['sample'].cat.categories) == grouped_result.sample_order
        assert list(frame['feature'].cat.categories) == grouped_result.feature_order.tolist()

        first = frame[frame['sample'] == grouped_result.sample_order[0]]
        assert first['feature'].tolist() == grouped_result.feature_order.tolist()

    def test_values_match_filtered_table(self, grouped_result):
        frame = stacked_bar_frame(grouped_result.filtered)
        wide = frame.pivot(index='sample', columns='feature', values='proportion')
        expected = grouped_result.filtered.to_frame()
        sample, feature = expected.index[3], expected.columns[5]
        assert wide.loc[sample, feature] == expected.loc[sample, feature]

    def test_explicit_sample_order(self, grouped_result):
        order = list(reversed(grouped_result.filtered.sample_ids))
        frame = stacked_bar_frame(grouped_result.filtered, sample_order=order)
        assert list(frame['sample'].cat.categories) == order
        assert frame['sample'].iloc[0] == order[0]

    def test_sample_order_must_be_permutation(self, grouped_result):
        with pytest.raises(ValueError, match="permutation"):
            stacked_bar_frame(grouped_result.filtered, sample_order=["S000", "S001"])

    def test_requires_filtered_proportions(self, grouped_result):
        with pytest.raises(StructuralError):
            stacked_bar_frame(grouped_result.clr)


class TestOrdinationFrame:

    def test_with_groups(self, grouped_result):
        frame = ordination_frame(
            grouped_result.pca, grouped_result.clr.sample_metadata, group_col='group'
        )
        assert list(frame.columns) == ['sample', 'PC1', 'PC2', 'group']
        assert set(frame['group']) == {'A', 'B'}
        assert frame['sample'].tolist() == grouped_result.clr.sample_ids.tolist()

    def test_other_components(self, grouped_result):
        frame = ordination_frame(grouped_result.pca, components=(2, 3))
        assert list(frame.columns) == ['sample', 'PC2', 'PC3']
        np.testing.assert_array_equal(frame['PC3'], grouped_result.pca.scores['PC3'])

    def test_missing_group_column(self, grouped_result):
        with pytest.raises(KeyError):
            ordination_frame(grouped_result.pca, grouped_result.clr.sample_metadata,
                             group_col='diagnosis')

    def test_component_out_of_range(self, grouped_result):
        with pytest.raises(ValueError, match="out of range"):
            ordination_frame(grouped_result.pca, components=(1, 99))

    def test_samples_without_metadata_get_nan(self, grouped_result):
        metadata = pd.DataFrame({'group': ['A']}, index=pd.Index(['S000']))
        frame = ordination_frame(grouped_result.pca, metadata, group_col='group')
        assert frame['group'].iloc[0] == 'A'
        assert frame['group'].iloc[1:].isna().all()


class TestScreeAndDendrogram:

    def test_scree(self, grouped_result):
        frame = scree_frame(grouped_result.pca)
        assert frame['component'].iloc[0] == "PC1"
        assert frame['cumulative_ratio'].iloc[-1] == pytest.approx(1.0)
        assert frame['explained_variance'].is_monotonic_decreasing

    def test_dendrogram(self, grouped_result):
        frame = dendrogram_frame(grouped_result.dendrogram)
        assert list(frame.columns) == ['merge', 'left', 'right', 'height', 'size']
        assert len(frame) == grouped_result.clr.n_samples - 1


class TestBuildPresentation:

    def test_bundle(self, grouped_result):
        bundle = build_presentation(grouped_result, group_col='group')
        assert bundle.feature_order == grouped_result.feature_order.tolist()
        assert bundle.sample_order == grouped_result.sample_order
        assert 'group' in bundle.ordination.columns
        assert len(bundle.scree) == grouped_result.pca.n_components

    def test_without_groups(self, grouped_result):
        bundle = build_presentation(grouped_result)
        assert 'group' not in bundle.ordination.columns
