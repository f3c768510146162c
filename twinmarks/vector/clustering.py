"""
K-means partitioning of the primary embedding space.

Clusters are identified for label caching by `cluster_key`: the five
lexicographically smallest member URLs joined with "|". As long as that
membership is stable, so is the cached name.
"""

import math
import warnings
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import numpy as np
from sklearn.cluster import KMeans
from sklearn.exceptions import ConvergenceWarning

from ..core.config import KMEANS_RANDOM_STATE
from ..core.schema import PageRecord, VectorView, split_vectorized
from ..util.logging import logger

CLUSTER_KEY_SIZE = 5
CLUSTER_KEY_SEPARATOR = "|"


def default_cluster_count(record_count: int) -> int:
    """Default k for a collection: max(2, floor(sqrt(n / 2)))."""
    return max(2, int(math.floor(math.sqrt(record_count / 2))))


def cluster_key(urls: Iterable[str]) -> str:
    """Deterministic cache key from the five smallest member URLs."""
    return CLUSTER_KEY_SEPARATOR.join(sorted(urls)[:CLUSTER_KEY_SIZE])


@dataclass
class ClusterMember:
    url: str
    title: str
    tags: List[str] = field(default_factory=list)


@dataclass
class Cluster:
    """A non-empty k-means cluster and, once labeled, its name."""

    id: int
    members: List[ClusterMember]
    centroid: Optional[List[float]] = None
    name: Optional[str] = None

    @property
    def urls(self) -> List[str]:
        return [m.url for m in self.members]

    @property
    def titles(self) -> List[str]:
        return [m.title for m in self.members]

    @property
    def tags(self) -> List[str]:
        """Multiset of member tags, in member order."""
        return [tag for m in self.members for tag in m.tags]

    @property
    def key(self) -> str:
        return cluster_key(self.urls)

    def most_frequent_tag(self) -> Optional[str]:
        """Most common member tag; ties go to the tag seen first."""
        counts = Counter(self.tags)
        if not counts:
            return None
        # Counter preserves insertion order, and most_common is stable
        return counts.most_common(1)[0][0]

    def __len__(self) -> int:
        return len(self.members)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "key": self.key,
            "items": [{"url": m.url, "title": m.title, "tags": list(m.tags)} for m in self.members],
        }


def _member(view: VectorView) -> ClusterMember:
    return ClusterMember(url=view.record.url, title=view.record.title, tags=list(view.record.tags))


def _dominant_dimension(views: List[VectorView]) -> List[VectorView]:
    """Keep only vectors sharing the most common dimensionality."""
    if not views:
        return views
    dimensions = Counter(view.vector.shape[0] for view in views)
    dominant, _ = dimensions.most_common(1)[0]
    kept = [view for view in views if view.vector.shape[0] == dominant]
    if len(kept) != len(views):
        logger.warning(
            f"Excluded {len(views) - len(kept)} records whose vector dimension differs from {dominant}"
        )
    return kept


def partition(records: Iterable[PageRecord], k: Optional[int] = None,
              random_state: int = KMEANS_RANDOM_STATE) -> List[Cluster]:
    """Partition vectorized records with k-means (k-means++ initialization).

    `k` defaults to `default_cluster_count(n)` and is clamped to
    [2, min(k, n)]. Fewer than two usable records give a single trivial
    cluster. Empty clusters are dropped.
    """
    views, skipped = split_vectorized(records, "vector")
    views = _dominant_dimension(views)
    # Input order must not influence the result
    views.sort(key=lambda view: view.url)

    n = len(views)
    if n == 0:
        logger.log_cluster_run(k or 0, 0, 0, {"skipped_unvectorized": len(skipped)})
        return []

    if n < 2:
        only = views[0]
        logger.log_cluster_run(k or 1, 1, 1, {"skipped_unvectorized": len(skipped)})
        return [Cluster(id=0, members=[_member(only)], centroid=only.vector.tolist())]

    requested = k if k is not None else default_cluster_count(n)
    actual_k = max(2, min(requested, n))

    data = np.vstack([view.vector for view in views])
    with warnings.catch_warnings():
        # Fewer distinct points than clusters is expected with duplicate pages
        warnings.simplefilter("ignore", ConvergenceWarning)
        model = KMeans(n_clusters=actual_k, init="k-means++", n_init=10, random_state=random_state)
        labels = model.fit_predict(data)

    buckets: List[List[ClusterMember]] = [[] for _ in range(actual_k)]
    for view, label in zip(views, labels):
        buckets[int(label)].append(_member(view))

    clusters = [
        Cluster(id=i, members=members, centroid=model.cluster_centers_[i].tolist())
        for i, members in enumerate(buckets)
        if members
    ]

    logger.log_cluster_run(requested, actual_k, n, {
        "non_empty_clusters": len(clusters),
        "skipped_unvectorized": len(skipped)
    })
    return clusters
