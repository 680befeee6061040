"""
simplexmap differential command - two-group differential abundance on CLR values.

Runs the compositional pipeline, then compares two metadata groups feature
by feature (Welch's t-test or Wilcoxon rank-sum, BH-adjusted q-values,
signed Cohen's d).

Usage:
    simplexmap differential --input counts.tsv --metadata meta.tsv \\
        --group-col diagnosis --groups CD control --output cd_vs_control.tsv
"""

import argparse
import sys
from pathlib import Path

from simplexmap.cli.run import add_pipeline_arguments, configure_logging, prepare
from simplexmap.core.errors import SimplexMapError
from simplexmap.io.writers import write_differential_results
from simplexmap.stats.differential import TESTS, compare_groups


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the differential subcommand."""
    parser = subparsers.add_parser(
        "differential",
        help="Two-group differential abundance on CLR coordinates",
        description="Run the pipeline and test every retained feature between two groups",
    )
    add_pipeline_arguments(parser)
    parser.add_argument("--group-col", type=str, default=None,
                        help="Metadata column holding the group labels")
    parser.add_argument("--groups", type=str, nargs=2, metavar=("A", "B"), default=None,
                        help="The two group labels to compare (A vs B)")
    parser.add_argument("--method", choices=sorted(TESTS), default="welch",
                        help="Per-feature test (default: welch)")
    parser.add_argument("--fdr", choices=["BH", "BY", "bonferroni"], default="BH",
                        help="Multiple testing correction (default: BH)")
    parser.add_argument("--output", "-o", type=Path, default=Path("differential.tsv"),
                        help="Output TSV path (default: differential.tsv)")
    parser.set_defaults(func=run_differential)


def run_differential(args: argparse.Namespace) -> int:
    """Execute the differential command."""
    configure_logging(args.verbose)

    args, result = prepare(args)
    if result is None:
        return 1

    if not args.group_col or not args.groups:
        print("ERROR: --group-col and --groups are required", file=sys.stderr)
        return 1
    group_a, group_b = args.groups

    print(f"\nComparing {group_a} vs {group_b} on '{args.group_col}' ({args.method}, {args.fdr})")
    try:
        table = compare_groups(
            result.clr, args.group_col, group_a, group_b,
            method=args.method, fdr=args.fdr,
        )
    except KeyError as e:
        print(f"ERROR: {e.args[0]}", file=sys.stderr)
        return 1
    except SimplexMapError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    n_sig = int((table['qvalue'] < 0.05).sum())
    print(f"Features tested: {len(table)}, q < 0.05: {n_sig}")

    path = write_differential_results(table, args.output)
    print(f"Wrote {path}")
    return 0
