"""
Input/output for feature tables, sample metadata and pipeline results.
"""

from simplexmap.io.formats import NA_VALUES, sniff_delimiter
from simplexmap.io.loaders import attach_metadata, load_feature_table, load_sample_metadata
from simplexmap.io.writers import write_differential_results, write_pipeline_outputs, write_table

__all__ = [
    'NA_VALUES',
    'sniff_delimiter',
    'load_feature_table',
    'load_sample_metadata',
    'attach_metadata',
    'write_table',
    'write_pipeline_outputs',
    'write_differential_results',
]
