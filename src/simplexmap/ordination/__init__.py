"""
Ordination and clustering in log-ratio space.

    run_pca: Principal components of a CLR table (SVD)
    aitchison_distances: Euclidean distances between CLR rows
    ward_clustering: Ward linkage dendrogram with canonical leaf order
"""

from simplexmap.ordination.pca import PCAResult, run_pca
from simplexmap.ordination.clustering import (
    Dendrogram,
    aitchison_distances,
    ward_clustering,
)

__all__ = [
    'PCAResult',
    'run_pca',
    'Dendrogram',
    'aitchison_distances',
    'ward_clustering',
]
