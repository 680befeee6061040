"""
Tests for the core data model: AbundanceTable, QualityFlag, Transform and
the error taxonomy.
"""

import numpy as np
import pandas as pd
import pytest

from simplexmap.core import (
    AbundanceTable,
    DomainError,
    QualityFlag,
    SimplexMapError,
    StructuralError,
    TableStage,
    Transform,
)


class TestAbundanceTable:

    def test_from_counts_builds_counts_stage(self, scenario_table):
        assert scenario_table.stage is TableStage.COUNTS
        assert scenario_table.shape == (4, 3)
        assert scenario_table.feature_order is None
        assert np.all(scenario_table.quality_flags == QualityFlag.ORIGINAL)
        assert list(scenario_table.sample_metadata.index) == ["S1", "S2", "S3", "S4"]

    def test_ids_are_strings(self):
        table = AbundanceTable.from_counts(np.ones((2, 2)), [1, 2], [10, 20])
        assert table.sample_ids.tolist() == ["1", "2"]
        assert table.feature_ids.tolist() == ["10", "20"]

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError, match="sample_ids length"):
            AbundanceTable(
                data=np.ones((2, 2)),
                sample_ids=pd.Index(["a"]),
                feature_ids=pd.Index(["x", "y"]),
                sample_metadata=pd.DataFrame(index=pd.Index(["a"])),
                quality_flags=np.zeros((2, 2), dtype=int),
            )

    def test_wrong_types_rejected(self):
        with pytest.raises(TypeError):
            AbundanceTable(
                data=[[1, 2]],
                sample_ids=pd.Index(["a"]),
                feature_ids=pd.Index(["x", "y"]),
                sample_metadata=pd.DataFrame(index=pd.Index(["a"])),
                quality_flags=np.zeros((1, 2), dtype=int),
            )

    def test_feature_order_must_be_permutation(self, scenario_table):
        with pytest.raises(ValueError, match="permutation"):
            scenario_table.with_data(
                scenario_table.data,
                stage=TableStage.COUNTS,
                feature_order=pd.Index(["A", "B", "Z"]),
            )

    def test_select_samples(self, scenario_table):
        subset = scenario_table.select_samples(np.array([True, False, True, False]))
        assert subset.sample_ids.tolist() == ["S1", "S3"]
        np.testing.assert_array_equal(subset.data, scenario_table.data[[0, 2]])
        assert subset.sample_metadata.index.equals(subset.sample_ids)

    def test_select_samples_length_checked(self, scenario_table):
        with pytest.raises(ValueError, match="mask length"):
            scenario_table.select_samples(np.array([True, False]))

    def test_select_features_restricts_order(self, scenario_table):
        ordered = scenario_table.with_data(
            scenario_table.data, stage=TableStage.COUNTS,
            feature_order=pd.Index(["C", "A", "B"]),
        )
        subset = ordered.select_features(np.array([True, False, True]))
        assert subset.feature_ids.tolist() == ["A", "C"]
        assert subset.feature_order.tolist() == ["C", "A"]

    def test_reorder_features(self, scenario_table):
        reordered = scenario_table.reorder_features(["C", "A", "B"])
        assert reordered.feature_ids.tolist() == ["C", "A", "B"]
        np.testing.assert_array_equal(reordered.data[:, 0], scenario_table.data[:, 2])

    def test_reorder_features_unknown_id(self, scenario_table):
        with pytest.raises(KeyError):
            scenario_table.reorder_features(["C", "A", "Z"])

    def test_reorder_features_not_permutation(self, scenario_table):
        with pytest.raises(ValueError):
            scenario_table.reorder_features(["A", "A", "B"])

    def test_operations_do_not_mutate(self, scenario_table):
        before = scenario_table.data.copy()
        scenario_table.select_features(np.array([True, True, False]))
        scenario_table.reorder_features(["B", "C", "A"])
        scenario_table.with_data(scenario_table.data * 2, stage=TableStage.COUNTS)
        np.testing.assert_array_equal(scenario_table.data, before)

    def test_copy_deep_is_independent(self, scenario_table):
        copied = scenario_table.copy(deep=True)
        copied.data[0, 0] = 999
        assert scenario_table.data[0, 0] == 10

    def test_to_frame_and_flags_frame(self, scenario_table):
        frame = scenario_table.to_frame()
        assert frame.loc["S2", "B"] == 8
        assert scenario_table.flags_frame().shape == (4, 3)

    def test_repr_mentions_stage(self, scenario_table):
        assert "counts" in repr(scenario_table)


class TestQualityFlag:

    def test_flags_combine(self):
        flag = QualityFlag.MISSING_ORIGINAL | QualityFlag.ZERO_REPLACED
        assert flag & QualityFlag.ZERO_REPLACED
        assert not flag & QualityFlag.SPARSE_FEATURE

    def test_flag_values(self):
        assert QualityFlag.ORIGINAL == 0
        assert QualityFlag.MISSING_ORIGINAL == 1
        assert QualityFlag.ZERO_REPLACED == 2
        assert QualityFlag.SPARSE_FEATURE == 4


class TestErrors:

    def test_structural_error_carries_context(self):
        err = StructuralError("bad sample", stage="zero_replacement", samples=["S3"])
        assert err.stage == "zero_replacement"
        assert err.samples == ["S3"]
        assert "[zero_replacement]" in str(err)
        assert "S3" in str(err)

    def test_errors_are_value_errors(self):
        assert issubclass(StructuralError, ValueError)
        assert issubclass(DomainError, ValueError)
        assert issubclass(DomainError, SimplexMapError)

    def test_long_id_lists_are_summarized(self):
        err = DomainError("many", features=[f"F{i}" for i in range(25)])
        assert "25 total" in str(err)
        assert "F24" not in str(err)


class _Double(Transform):
    expected_stage = TableStage.PROPORTIONS

    def __init__(self):
        super().__init__(name="Double", params={"factor": 2})

    def apply(self, table):
        self.check(table)
        return table.with_data(table.data * 2, stage=table.stage)


class TestTransform:

    def test_stage_mismatch_raises_structural_error(self, scenario_table):
        with pytest.raises(StructuralError, match="expects a proportions table"):
            _Double().apply(scenario_table)

    def test_validate_reports_empty_table(self):
        empty = AbundanceTable.from_counts(np.empty((0, 3)), [], ["A", "B", "C"])
        errors = _Double().validate(empty)
        assert any("empty" in e for e in errors)

    def test_repr(self):
        assert repr(_Double()) == "Double(factor=2)"
