"""
simplexmap run command - compositional pipeline from counts to ordination.

Usage:
    simplexmap run --input counts.tsv --output results/
    simplexmap run --input counts.tsv --metadata meta.tsv --threshold 1e-3
    simplexmap run --config pipeline.yaml --verbose
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from simplexmap.cli._validators import _fraction, _positive_int, _probability, _proportion
from simplexmap.core.errors import SimplexMapError
from simplexmap.core.table import AbundanceTable
from simplexmap.io.loaders import attach_metadata, load_feature_table, load_sample_metadata
from simplexmap.io.writers import write_pipeline_outputs
from simplexmap.pipeline import PipelineConfig, PipelineResult, run_pipeline

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def add_pipeline_arguments(parser: argparse.ArgumentParser) -> None:
    """Input and pipeline options shared by every command that runs the pipeline."""
    parser.add_argument("--input", "-i", type=Path, default=None,
                        help="Feature table (delimited text, features as rows by default)")
    parser.add_argument("--metadata", "-m", type=Path, default=None,
                        help="Sample metadata table keyed by sample id")
    parser.add_argument("--sample-col", type=str, default=None,
                        help="Metadata column with sample ids (default: first column)")
    parser.add_argument("--delimiter", type=str, default=None,
                        help="Column delimiter of the input files (default: sniffed)")
    parser.add_argument("--samples-as-rows", action="store_true",
                        help="Input table has samples as rows and features as columns")

    parser.add_argument("--threshold", type=_proportion, default=1e-4,
                        help="Abundance filter: keep features whose max proportion >= this (default: 1e-4)")
    parser.add_argument("--delta", type=_probability, default=None,
                        help="Zero replacement fraction of sample total (default: 1/D^2)")
    parser.add_argument("--max-zero-fraction", type=_fraction, default=0.8,
                        help="Warn for features with more zeros than this fraction (default: 0.8)")
    parser.add_argument("--keep-degenerate", action="store_true",
                        help="Fail on all-zero samples instead of dropping them")
    parser.add_argument("--n-components", type=_positive_int, default=None,
                        help="Number of principal components to keep (default: all)")

    parser.add_argument("--config", type=Path, default=None,
                        help="YAML/JSON config file (CLI arguments override it)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Zero replacement, CLR, PCA and Ward clustering of a count table",
        description="Run the compositional pipeline and write all result tables",
    )
    add_pipeline_arguments(parser)
    parser.add_argument("--output", "-o", type=Path, default=Path("simplexmap_results"),
                        help="Output directory (default: simplexmap_results)")
    parser.set_defaults(func=run_run)


def apply_config(args: argparse.Namespace) -> tuple[argparse.Namespace, Dict[str, Any]]:
    """
    Merge --config into args.

    Returns:
        (merged args, pipeline sections of the config file)

    Raises:
        FileNotFoundError, ValueError: On a missing or invalid config file
    """
    if not args.config:
        return args, {}

    from simplexmap.cli.config import (
        OPTION_KEYS, PATH_KEYS, load_config, merge_config_with_args, validate_config,
    )

    print(f"Loading configuration from: {args.config}")
    config = load_config(args.config)
    validate_config(config)
    merged = merge_config_with_args(config, args, getattr(args, "cli_args", None))
    sections = {k: v for k, v in config.items() if k not in PATH_KEYS + OPTION_KEYS}
    print("  Configuration loaded successfully")
    return merged, sections


def build_pipeline_config(
    args: argparse.Namespace,
    sections: Optional[Dict[str, Any]] = None,
) -> PipelineConfig:
    """PipelineConfig from config-file sections overlaid with (merged) CLI values."""
    sections = {name: dict(values or {}) for name, values in (sections or {}).items()}
    zero = sections.setdefault('zero_replacement', {})
    zero['delta'] = args.delta
    zero['max_zero_fraction'] = args.max_zero_fraction
    zero['drop_degenerate_samples'] = not args.keep_degenerate
    sections.setdefault('filter', {})['threshold'] = args.threshold
    sections.setdefault('ordination', {})['n_components'] = args.n_components
    return PipelineConfig.from_dict(sections)


def load_input(args: argparse.Namespace) -> AbundanceTable:
    """Load the feature table and, if given, attach sample metadata."""
    table = load_feature_table(
        args.input,
        delimiter=args.delimiter,
        features_as_rows=not args.samples_as_rows,
    )
    print(f"Loaded: {table.n_samples:,} samples x {table.n_features:,} features")

    if args.metadata:
        metadata = load_sample_metadata(args.metadata, sample_col=args.sample_col,
                                        delimiter=args.delimiter)
        table = attach_metadata(table, metadata)
        print(f"Metadata columns: {', '.join(map(str, metadata.columns))}")
    return table


def prepare(args: argparse.Namespace) -> tuple[argparse.Namespace, Optional[PipelineResult]]:
    """
    Config merge, loading and pipeline run shared by the subcommands.

    Returns:
        (args merged with the config file, result). The result is None
        after a failure, whose message has been printed to stderr.
    """
    try:
        args, sections = apply_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: Config file error: {e}", file=sys.stderr)
        return args, None

    if not args.input:
        print("ERROR: --input is required (via CLI or config file)", file=sys.stderr)
        return args, None

    try:
        config = build_pipeline_config(args, sections)
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return args, None

    print(f"Loading: {args.input}")
    try:
        table = load_input(args)
        result = run_pipeline(table, config)
    except (SimplexMapError, ValueError, FileNotFoundError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return args, None

    print(f"Zero patterns: {result.zero_report.n_patterns} distinct, "
          f"{len(result.dropped_samples)} all-zero sample(s), "
          f"{len(result.absent_features)} absent feature(s) dropped")
    print(f"Zero replacement: delta={result.delta:.3g}, "
          f"{result.n_missing_coerced} missing entries coerced")
    print(f"Abundance filter: kept {result.filter_result.n_passed}/"
          f"{result.filter_result.n_passed + result.filter_result.n_failed} features")
    ratios = ", ".join(
        f"PC{i + 1} {100 * r:.1f}%" for i, r in enumerate(result.pca.explained_variance_ratio[:3])
    )
    print(f"PCA: rank {result.pca.rank}/{result.pca.expected_rank}; {ratios}")
    print(f"Ward leaf order: {', '.join(result.sample_order[:10])}"
          + (" ..." if len(result.sample_order) > 10 else ""))
    return args, result


def run_run(args: argparse.Namespace) -> int:
    """Execute the run command."""
    configure_logging(args.verbose)

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  Compositional pipeline: counts -> CLR -> PCA / Ward")
    print(f"{'='*70}")
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}\n")

    args, result = prepare(args)
    if result is None:
        return 1

    written = write_pipeline_outputs(result, args.output)
    for path in written.values():
        print(f"Wrote {path}")

    elapsed = (datetime.now() - start_time).total_seconds()
    print(f"\nDone in {elapsed:.1f}s")
    return 0
