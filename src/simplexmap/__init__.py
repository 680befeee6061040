"""
SimplexMap - Compositional ordination and clustering for sparse count tables

Takes sparse, non-negative abundance tables (e.g., microbiome surveys)
through zero replacement, closure, abundance filtering and the centered
log-ratio transform, then ordinates (PCA) and clusters (Ward on Aitchison
distance) samples in log-ratio space.
"""

__version__ = "0.1.0"

from simplexmap.core.table import AbundanceTable, TableStage
from simplexmap.core.transform import Transform
from simplexmap.core.quality import QualityFlag

__all__ = [
    "AbundanceTable",
    "TableStage",
    "Transform",
    "QualityFlag",
]
