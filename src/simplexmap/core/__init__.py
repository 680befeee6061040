"""
Core data structures and abstractions for compositional analysis.

1. AbundanceTable: samples × features matrix with metadata, quality flags,
   pipeline stage and canonical feature order
2. QualityFlag: Bitwise flags for per-value provenance
3. Transform: Abstract base class for immutable table transformations
4. Error taxonomy: StructuralError, DomainError and advisory warnings
"""

from simplexmap.core.errors import (
    DomainError,
    NumericalDegeneracyWarning,
    SimplexMapError,
    SparsityWarning,
    StructuralError,
)
from simplexmap.core.quality import QualityFlag
from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.core.transform import Transform

__all__ = [
    'AbundanceTable',
    'TableStage',
    'QualityFlag',
    'Transform',
    'SimplexMapError',
    'StructuralError',
    'DomainError',
    'SparsityWarning',
    'NumericalDegeneracyWarning',
]
