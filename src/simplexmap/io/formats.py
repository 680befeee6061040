"""
Delimited-text conventions for feature tables and sample metadata.

The design philosophy: auto-detect what's safe (the delimiter), make
everything else explicit (orientation, identifier column, NA tokens).

Feature tables come in two orientations:
    - features as rows, samples as columns (the usual OTU/ASV table export)
    - samples as rows, features as columns

The loader is told which one it is reading and transposes once into the
internal samples × features layout.
"""

from __future__ import annotations

import csv
from pathlib import Path

__all__ = [
    'NA_VALUES',
    'SUFFIX_DELIMITERS',
    'sniff_delimiter',
    'resolve_delimiter',
]

# Tokens parsed as missing; missing counts are coerced to zero later,
# explicitly, by normalize_missing
NA_VALUES = ['', 'NA', 'NaN', 'nan', 'null', 'None']

SUFFIX_DELIMITERS = {
    '.tsv': '\t',
    '.tab': '\t',
    '.csv': ',',
}


def sniff_delimiter(path: Path, sample_size: int = 8192) -> str:
    """
    Auto-detect delimiter from file content.

    Uses Python's csv.Sniffer with a first-line counting fallback.

    Args:
        path: Path to data file
        sample_size: Bytes to sample for detection

    Returns:
        Detected delimiter character ('\\t', ',', ';' or '|')

    Raises:
        ValueError: If delimiter cannot be determined
    """
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        sample = f.read(sample_size)

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters='\t,;|')
        return dialect.delimiter
    except csv.Error:
        pass

    first_line = sample.split('\n')[0]
    counts = {d: first_line.count(d) for d in ('\t', ',', ';', '|')}

    if max(counts.values()) == 0:
        raise ValueError(
            f"Could not detect delimiter in {path}. "
            "Please specify it explicitly (--delimiter)"
        )

    return max(counts, key=counts.get)


def resolve_delimiter(path: Path, delimiter: str | None = None) -> str:
    """
    Delimiter to use for `path`: explicit value, else sniffed content.

    The file suffix is only a tie-breaker when sniffing fails.
    """
    if delimiter is not None:
        return delimiter
    try:
        return sniff_delimiter(path)
    except ValueError:
        suffix = Path(path).suffix.lower()
        if suffix in SUFFIX_DELIMITERS:
            return SUFFIX_DELIMITERS[suffix]
        raise
