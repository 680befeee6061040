"""
Tests for closure, abundance filtering with canonical ordering, and CLR.
"""

import sys

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from simplexmap.compositional import (
    AbundanceFilter,
    CLRTransform,
    Closure,
    ZeroReplacement,
    canonical_feature_order,
    clr,
    clr_inverse,
)
from simplexmap.core import AbundanceTable, DomainError, StructuralError, TableStage


def _proportions(counts_table):
    pseudo = ZeroReplacement().apply(counts_table)
    return pseudo, Closure().apply(pseudo)


class TestClosure:

    def test_rows_sum_to_one(self, sparse_table):
        _, proportions = _proportions(sparse_table)
        assert proportions.stage is TableStage.PROPORTIONS
        assert_allclose(proportions.data.sum(axis=1), 1.0, atol=1e-9)

    def test_scale_invariant(self, scenario_table):
        pseudo = ZeroReplacement().apply(scenario_table)
        scaled = pseudo.with_data(pseudo.data * 37.5, stage=TableStage.PSEUDO_COUNTS)
        assert_allclose(Closure().apply(scaled).data, Closure().apply(pseudo).data)

    def test_rejects_counts_stage(self, scenario_table):
        with pytest.raises(StructuralError, match="expects a pseudo_counts table"):
            Closure().apply(scenario_table)

    def test_non_positive_is_domain_error(self, scenario_table):
        pseudo = scenario_table.with_data(scenario_table.data, stage=TableStage.PSEUDO_COUNTS)
        with pytest.raises(DomainError) as exc_info:
            Closure().apply(pseudo)
        assert exc_info.value.samples == ["S1", "S2", "S3"]
        assert exc_info.value.features == ["A", "B", "C"]


class TestCanonicalFeatureOrder:

    def test_descending_totals(self):
        totals = pd.Series({"low": 1.0, "high": 10.0, "mid": 5.0})
        assert canonical_feature_order(totals).tolist() == ["high", "mid", "low"]

    def test_ties_broken_by_feature_id(self):
        totals = pd.Series({"b": 5.0, "c": 9.0, "a": 5.0})
        assert canonical_feature_order(totals).tolist() == ["c", "a", "b"]


class TestAbundanceFilter:

    def test_rare_feature_excluded(self, rare_feature_table):
        pseudo, proportions = _proportions(rare_feature_table)
        filtered = AbundanceFilter(threshold=1e-4).apply(proportions, ordering_basis=pseudo)
        assert filtered.stage is TableStage.FILTERED_PROPORTIONS
        assert "RARE" not in filtered.feature_ids
        assert "RARE" not in filtered.feature_order
        assert filtered.feature_order.tolist() == ["BETA", "ALPHA", "GAMMA"]

    def test_filtered_proportions_not_reclosed(self, rare_feature_table):
        pseudo, proportions = _proportions(rare_feature_table)
        filtered = AbundanceFilter().apply(proportions, ordering_basis=pseudo)
        assert np.all(filtered.data.sum(axis=1) < 1.0)
        assert_allclose(filtered.data, proportions.data[:, :3])

    def test_threshold_zero_keeps_everything(self, rare_feature_table):
        _, proportions = _proportions(rare_feature_table)
        result = AbundanceFilter(threshold=0).get_filter_result(proportions)
        assert result.n_failed == 0
        assert result.pass_rate == 1.0

    def test_monotone_in_threshold(self, sparse_table):
        _, proportions = _proportions(sparse_table)
        previous = None
        for tau in [0.0, 1e-4, 1e-3, 1e-2, 5e-2, 0.2]:
            passed = set(AbundanceFilter(threshold=tau).get_filter_result(proportions).passed_features)
            if previous is not None:
                assert passed <= previous
            previous = passed

    def test_too_few_features_raises(self, rare_feature_table):
        _, proportions = _proportions(rare_feature_table)
        with pytest.raises(StructuralError, match="at least 2 required"):
            AbundanceFilter(threshold=0.99).apply(proportions)

    def test_ordering_basis_must_match(self, rare_feature_table, scenario_table):
        _, proportions = _proportions(rare_feature_table)
        other, _ = _proportions(scenario_table)
        with pytest.raises(ValueError, match="ordering_basis"):
            AbundanceFilter().apply(proportions, ordering_basis=other)

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            AbundanceFilter(threshold=1.5)

    def test_order_independent_of_column_order(self, sparse_table):
        pseudo, proportions = _proportions(sparse_table)
        order = AbundanceFilter().apply(proportions, ordering_basis=pseudo).feature_order

        shuffled_ids = sparse_table.feature_ids[::-1]
        shuffled = sparse_table.reorder_features(shuffled_ids)
        pseudo_s, proportions_s = _proportions(shuffled)
        order_s = AbundanceFilter().apply(proportions_s, ordering_basis=pseudo_s).feature_order
        assert order.equals(order_s)


class TestCLR:

    def test_rows_sum_to_zero(self, sparse_table):
        pseudo, proportions = _proportions(sparse_table)
        filtered = AbundanceFilter().apply(proportions, ordering_basis=pseudo)
        clr_table = CLRTransform().apply(filtered)
        assert clr_table.stage is TableStage.CLR
        assert_allclose(clr_table.data.sum(axis=1), 0.0, atol=1e-9)

    def test_columns_follow_feature_order(self, rare_feature_table):
        pseudo, proportions = _proportions(rare_feature_table)
        filtered = AbundanceFilter().apply(proportions, ordering_basis=pseudo)
        clr_table = CLRTransform().apply(filtered)
        assert clr_table.feature_ids.equals(filtered.feature_order)

    def test_known_values(self):
        values = np.array([[1.0, np.e, np.e ** 2]])
        assert_allclose(clr(values), [[-1.0, 0.0, 1.0]])

    def test_inverse_recovers_closed_composition(self):
        values = np.array([[0.2, 0.3, 0.5], [0.7, 0.1, 0.2]])
        assert_allclose(clr_inverse(clr(values)), values)

    def test_scale_invariant(self):
        values = np.array([[0.2, 0.3, 0.1]])
        assert_allclose(clr(values), clr(values * 4.2))

    def test_non_positive_is_domain_error(self):
        with pytest.raises(DomainError):
            clr(np.array([[0.5, 0.0, 0.5]]))

    def test_row_sum_drift_is_domain_error(self, scenario_table, monkeypatch):
        pseudo, proportions = _proportions(scenario_table)
        filtered = AbundanceFilter().apply(proportions, ordering_basis=pseudo)
        clr_module = sys.modules[CLRTransform.__module__]
        shifted = [[0.0], [1e-6], [0.0], [0.0]]
        monkeypatch.setattr(clr_module, "clr", lambda values: clr(values) + shifted)

        with pytest.raises(DomainError, match="row sums") as exc_info:
            CLRTransform().apply(filtered)
        assert exc_info.value.samples == ["S2"]
        assert exc_info.value.stage == "CLRTransform"

    def test_transform_names_offending_cells(self):
        table = AbundanceTable.from_counts(
            np.array([[0.5, 0.5], [0.0, 1.0]]), ["S1", "S2"], ["A", "B"]
        ).with_data(
            np.array([[0.5, 0.5], [0.0, 1.0]]),
            stage=TableStage.FILTERED_PROPORTIONS,
            feature_order=pd.Index(["A", "B"]),
        )
        with pytest.raises(DomainError) as exc_info:
            CLRTransform().apply(table)
        assert exc_info.value.samples == ["S2"]
        assert exc_info.value.features == ["A"]

    def test_requires_feature_order(self, rare_feature_table):
        _, proportions = _proportions(rare_feature_table)
        unordered = proportions.with_data(proportions.data, stage=TableStage.FILTERED_PROPORTIONS)
        with pytest.raises(StructuralError, match="canonical feature order"):
            CLRTransform().apply(unordered)
