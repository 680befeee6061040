"""
SimplexMap CLI - Command-line interface for compositional ordination.

Commands:
    simplexmap run           - Counts -> CLR -> PCA + Ward clustering, write all tables
    simplexmap differential  - Two-group differential abundance on CLR values
"""

import argparse
import sys
from typing import Optional, List

from simplexmap import __version__


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for simplexmap."""
    parser = argparse.ArgumentParser(
        prog="simplexmap",
        description="Compositional ordination and clustering of sparse count tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run           Zero replacement, closure, filtering, CLR, PCA and Ward clustering
  differential  Two-group differential abundance on CLR coordinates

Examples:
  simplexmap run --input counts.tsv --output results/
  simplexmap run --input counts.tsv --metadata meta.tsv --threshold 1e-3 --verbose
  simplexmap differential --input counts.tsv --metadata meta.tsv \\
      --group-col diagnosis --groups CD control
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from simplexmap.cli import run, differential
    run.register_parser(subparsers)
    differential.register_parser(subparsers)

    argv = sys.argv[1:] if args is None else list(args)
    parsed_args = parser.parse_args(argv)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    # Raw arguments let the config merge tell explicit values from defaults
    parsed_args.cli_args = argv[1:]
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
