"""
Tests for the simplexmap command-line interface and config merging.
"""

import argparse
import json
from pathlib import Path

import pandas as pd
import pytest
import yaml

from simplexmap import __version__
from simplexmap.cli import main
from simplexmap.cli._validators import (
    _fraction,
    _positive_float,
    _positive_int,
    _probability,
    _proportion,
)
from simplexmap.cli.config import (
    explicit_arg_names,
    load_config,
    merge_config_with_args,
    validate_config,
)


def _params(outdir: Path) -> dict:
    return json.loads((outdir / "parameters.json").read_text())


class TestMain:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "simplexmap" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_invalid_threshold_rejected_by_parser(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--input", "x.tsv", "--threshold", "2"])
        assert exc_info.value.code == 2


class TestRunCommand:

    def test_writes_outputs(self, tmp_path, counts_file, metadata_file):
        outdir = tmp_path / "results"
        code = main([
            "run", "--input", str(counts_file), "--metadata", str(metadata_file),
            "--output", str(outdir),
        ])
        assert code == 0
        for name in ["clr", "pca_scores", "ward_linkage", "leaf_order", "zero_patterns"]:
            assert (outdir / f"{name}.tsv").exists()
        params = _params(outdir)
        assert params['config']['filter']['threshold'] == 1e-4
        assert params['counts']['n_samples'] == 30

    def test_cli_parameters_reach_pipeline(self, tmp_path, counts_file):
        outdir = tmp_path / "results"
        code = main([
            "run", "-i", str(counts_file), "-o", str(outdir),
            "--threshold", "0.01", "--delta", "0.001", "--n-components", "3",
        ])
        assert code == 0
        params = _params(outdir)
        assert params['effective']['threshold'] == 0.01
        assert params['effective']['delta'] == 0.001
        assert params['effective']['n_components'] == 3

    def test_missing_input(self, capsys):
        assert main(["run"]) == 1
        assert "--input is required" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["run", "--input", str(tmp_path / "absent.tsv"),
                     "--output", str(tmp_path / "out")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_degenerate_sample(self, tmp_path, capsys):
        path = tmp_path / "counts.tsv"
        path.write_text(
            "feature_id\tS1\tS2\tS3\tS4\tS5\n"
            "A\t10\t0\t6\t1\t0\n"
            "B\t0\t8\t6\t1\t0\n"
            "C\t5\t2\t0\t1\t0\n"
        )
        outdir = tmp_path / "out"

        assert main(["run", "--input", str(path), "--output", str(outdir),
                     "--keep-degenerate"]) == 1
        assert "S5" in capsys.readouterr().err
        assert not (outdir / "parameters.json").exists()

        assert main(["run", "--input", str(path), "--output", str(outdir)]) == 0
        assert _params(outdir)['counts']['dropped_samples'] == ["S5"]


class TestConfigFile:

    def _write_config(self, tmp_path, counts_file, **sections):
        config = {'input': str(counts_file), 'output': str(tmp_path / "from_config")}
        config.update(sections)
        path = tmp_path / "pipeline.yaml"
        path.write_text(yaml.safe_dump(config))
        return path

    def test_config_values_used(self, tmp_path, counts_file):
        path = self._write_config(tmp_path, counts_file, filter={'threshold': 0.01})
        assert main(["run", "--config", str(path)]) == 0
        params = _params(tmp_path / "from_config")
        assert params['config']['filter']['threshold'] == 0.01

    def test_cli_overrides_config(self, tmp_path, counts_file):
        path = self._write_config(tmp_path, counts_file, filter={'threshold': 0.01})
        outdir = tmp_path / "cli_out"
        assert main(["run", "--config", str(path), "--threshold", "0.001",
                     "-o", str(outdir)]) == 0
        params = _params(outdir)
        assert params['config']['filter']['threshold'] == 0.001

    def test_drop_degenerate_from_config(self, tmp_path, counts_file):
        path = self._write_config(
            tmp_path, counts_file, zero_replacement={'drop_degenerate_samples': False}
        )
        assert main(["run", "--config", str(path)]) == 0
        params = _params(tmp_path / "from_config")
        assert params['config']['zero_replacement']['drop_degenerate_samples'] is False

    def test_invalid_section(self, tmp_path, counts_file, capsys):
        path = self._write_config(tmp_path, counts_file, plots={'dpi': 300})
        assert main(["run", "--config", str(path)]) == 1
        assert "Unknown config section" in capsys.readouterr().err

    def test_load_config_json(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({'filter': {'threshold': 0.5}}))
        assert load_config(path) == {'filter': {'threshold': 0.5}}

    def test_load_config_unsupported_suffix(self, tmp_path):
        path = tmp_path / "pipeline.toml"
        path.write_text("x = 1")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config(path)

    def test_load_config_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "none.yaml")

    def test_validate_config_ignores_paths(self):
        validate_config({'input': 'x.tsv', 'group_col': 'g', 'filter': {'threshold': 0.1}})
        with pytest.raises(ValueError):
            validate_config({'filter': {'threshold': 3}})


class TestMergeConfig:

    def test_explicit_arg_names(self):
        names = explicit_arg_names(["--threshold=0.1", "-i", "x.tsv", "--max-zero-fraction", "0.5"])
        assert names == {"threshold", "input", "max_zero_fraction"}

    def test_priority(self):
        args = argparse.Namespace(input=None, output=Path("default"), threshold=0.5, delta=None,
                                  keep_degenerate=False)
        config = {
            'input': 'config.tsv',
            'output': 'config_out',
            'filter': {'threshold': 0.01},
            'zero_replacement': {'delta': 0.001, 'drop_degenerate_samples': False},
        }
        merged = merge_config_with_args(config, args, ["--threshold", "0.5"])

        assert merged.input == Path("config.tsv")
        assert merged.output == Path("config_out")
        assert merged.threshold == 0.5
        assert merged.delta == 0.001
        assert merged.keep_degenerate is True
        assert args.input is None


class TestDifferentialCommand:

    def test_writes_table(self, tmp_path, counts_file, metadata_file):
        out = tmp_path / "de.tsv"
        code = main([
            "differential", "--input", str(counts_file), "--metadata", str(metadata_file),
            "--group-col", "group", "--groups", "B", "A", "--method", "wilcoxon",
            "--output", str(out),
        ])
        assert code == 0
        table = pd.read_csv(out, sep="\t", index_col=0)
        assert table.index.name == "feature"
        assert {'pvalue', 'qvalue', 'cohens_d'} <= set(table.columns)

    def test_groups_required(self, tmp_path, counts_file, metadata_file, capsys):
        code = main([
            "differential", "--input", str(counts_file), "--metadata", str(metadata_file),
            "--output", str(tmp_path / "de.tsv"),
        ])
        assert code == 1
        assert "--group-col and --groups are required" in capsys.readouterr().err

    def test_unknown_group_column(self, tmp_path, counts_file, metadata_file, capsys):
        code = main([
            "differential", "--input", str(counts_file), "--metadata", str(metadata_file),
            "--group-col", "diagnosis", "--groups", "B", "A",
            "--output", str(tmp_path / "de.tsv"),
        ])
        assert code == 1
        assert "diagnosis" in capsys.readouterr().err


class TestValidators:

    def test_bounds(self):
        assert _positive_int("3") == 3
        assert _probability("0.5") == 0.5
        assert _fraction("1") == 1.0
        assert _proportion("0") == 0.0
        assert _positive_float("2.5") == 2.5
        for validator, value in [
            (_positive_int, "0"), (_probability, "1"), (_fraction, "0"),
            (_proportion, "1.1"), (_positive_float, "-1"),
        ]:
            with pytest.raises(argparse.ArgumentTypeError):
                validator(value)
