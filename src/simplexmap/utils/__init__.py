"""Utility modules for file output and shared statistics."""

from simplexmap.utils.fileio import (
    atomic_write_json,
)
from simplexmap.utils.statistics import (
    cohens_d,
)

__all__ = [
    # Atomic file-write utilities
    'atomic_write_json',
    # Statistical utilities
    'cohens_d',
]
