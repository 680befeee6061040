"""
Configuration file support for the simplexmap CLI.

Supports YAML and JSON config files with CLI argument override. A config
file mirrors PipelineConfig plus the input/output paths:

    input: counts.tsv
    metadata: metadata.tsv
    output: results/
    zero_replacement:
      delta: null
      max_zero_fraction: 0.8
      drop_degenerate_samples: true
    filter:
      threshold: 0.0001
    ordination:
      n_components: null
"""

import json
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from simplexmap.pipeline import PipelineConfig

# Top-level keys that are not pipeline sections
PATH_KEYS = ('input', 'output', 'metadata')
OPTION_KEYS = ('sample_col', 'group_col', 'method')

# (section, key) -> CLI argument name
SECTION_MAPPINGS = {
    ('zero_replacement', 'delta'): 'delta',
    ('zero_replacement', 'max_zero_fraction'): 'max_zero_fraction',
    ('filter', 'threshold'): 'threshold',
    ('ordination', 'n_components'): 'n_components',
}

SHORT_TO_LONG = {
    'i': 'input',
    'o': 'output',
    'm': 'metadata',
    'v': 'verbose',
}


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid

    Examples:
        >>> config = load_config(Path("pipeline.yaml"))
        >>> print(config['filter']['threshold'])
        0.0001
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(
            f"Unsupported config format: {suffix}. "
            f"Use .yaml, .yml, or .json"
        )

    try:
        with open(config_path, 'r') as f:
            if suffix == '.json':
                config = json.load(f)
            else:
                config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    The pipeline sections are checked by PipelineConfig.from_dict();
    top-level keys must be paths or known options.

    Raises:
        ValueError: If configuration is invalid
    """
    sections = {k: v for k, v in config.items() if k not in PATH_KEYS + OPTION_KEYS}
    PipelineConfig.from_dict(sections)


def _merge_value(cli_value: Any, config_value: Any, was_explicitly_set: bool) -> Any:
    """
    Merge a single config value with CLI argument.

    Rules:
    - CLI args ALWAYS override config if explicitly set
    - If CLI arg not set, use config value
    - If neither set, keep CLI default
    """
    if was_explicitly_set:
        return cli_value

    if config_value is not None:
        return config_value

    return cli_value


def explicit_arg_names(cli_args: Optional[List[str]]) -> set:
    """Names (dest form) of the options present on the command line."""
    explicit = set()
    for arg in cli_args or []:
        if arg.startswith('--'):
            explicit.add(arg[2:].split('=', 1)[0].replace('-', '_'))
        elif arg.startswith('-') and len(arg) == 2 and arg[1] in SHORT_TO_LONG:
            explicit.add(SHORT_TO_LONG[arg[1]])
    return explicit


def merge_config_with_args(
    config: Dict[str, Any],
    args: Namespace,
    cli_args: Optional[List[str]] = None,
) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values)
                  If None, assumes all args are defaults

    Returns:
        Updated Namespace with merged values
    """
    explicit_args = explicit_arg_names(cli_args)
    merged = Namespace(**vars(args))

    for key in PATH_KEYS:
        if key in config and hasattr(merged, key):
            value = config[key]
            if value is not None:
                value = Path(value)
            setattr(merged, key, _merge_value(getattr(merged, key), value, key in explicit_args))

    for key in OPTION_KEYS:
        if key in config and hasattr(merged, key):
            setattr(merged, key, _merge_value(getattr(merged, key), config[key], key in explicit_args))

    for (section, key), arg_name in SECTION_MAPPINGS.items():
        values = config.get(section) or {}
        if key in values and hasattr(merged, arg_name):
            setattr(merged, arg_name, _merge_value(
                getattr(merged, arg_name), values[key], arg_name in explicit_args
            ))

    # drop_degenerate_samples is the inverse of the --keep-degenerate flag
    zero_section = config.get('zero_replacement') or {}
    if 'drop_degenerate_samples' in zero_section and 'keep_degenerate' not in explicit_args:
        merged.keep_degenerate = not bool(zero_section['drop_degenerate_samples'])

    return merged
