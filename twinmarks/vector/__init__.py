"""
Vector layer: similarity ranking and k-means clustering over stored records.
Embedding providers live in `twinmarks.vector.embeddings`.
"""

# Package initialization for vector module
from .types import SearchResult, Link
from .similarity import cosine_similarity, SimilarityEngine, build_links
from .clustering import Cluster, ClusterMember, partition, cluster_key, default_cluster_count

__all__ = [
    'SearchResult',
    'Link',
    'cosine_similarity',
    'SimilarityEngine',
    'build_links',
    'Cluster',
    'ClusterMember',
    'partition',
    'cluster_key',
    'default_cluster_count'
]
