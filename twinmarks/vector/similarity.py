"""
Cosine-similarity ranking over stored page records.

Pairwise link construction is O(n^2); it targets collections of thousands of
records, not millions.
"""

from collections import defaultdict
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..core.schema import PageRecord, VectorView, split_vectorized
from ..core.store import IRecordStore
from ..util.logging import logger
from .types import Link, SearchResult


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity of two vectors.

    Absent, empty, zero-norm or mismatched-dimension inputs score 0.0.
    """
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def _to_result(view: VectorView, score: float) -> SearchResult:
    record = view.record
    return SearchResult(
        url=record.url,
        title=record.title,
        score=score,
        description=record.description,
        category=record.category,
        timestamp=record.timestamp
    )


def rank_records(query_vector: Sequence[float], records: Iterable[PageRecord],
                 field: str = "vector", limit: int = 5) -> List[SearchResult]:
    """Rank records against a query vector, best first, recent first on ties.

    A zero-norm query scores every record 0.0, leaving them in recency order.
    """
    if limit <= 0 or query_vector is None or len(query_vector) == 0:
        return []

    query = np.asarray(query_vector, dtype=np.float64)
    views, skipped = split_vectorized(records, field)
    if skipped:
        logger.debug(f"Skipped {len(skipped)} records without a usable vector")

    scored = [_to_result(view, cosine_similarity(query, view.vector)) for view in views]
    scored.sort(key=lambda r: (-r.score, -r.timestamp))
    return scored[:limit]


def build_links(records: Iterable[PageRecord], threshold: float, field: str = "vector") -> List[Link]:
    """Edges between every pair of records whose similarity exceeds `threshold`."""
    views, _ = split_vectorized(records, field)

    # Vectors of different dimension are never compared
    by_dimension = defaultdict(list)
    for view in views:
        by_dimension[view.vector.shape[0]].append(view)

    links: List[Link] = []
    for group in by_dimension.values():
        if len(group) < 2:
            continue
        matrix = np.vstack([view.vector for view in group])
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        normalized = matrix / norms
        scores = normalized @ normalized.T

        rows, cols = np.triu_indices(len(group), k=1)
        for i, j in zip(rows, cols):
            score = float(scores[i, j])
            if score > threshold:
                links.append(Link(source=group[i].url, target=group[j].url, score=score))

    links.sort(key=lambda link: -link.score)
    return links


class SimilarityEngine:
    """Ranks the records of a store by cosine similarity."""

    def __init__(self, store: IRecordStore):
        self.store = store

    def rank(self, query_vector: Sequence[float], field: str = "vector", limit: int = 5,
             records: Optional[Iterable[PageRecord]] = None) -> List[SearchResult]:
        """Top `limit` records for `query_vector`.

        `field="semantic_vector"` uses each record's semantic vector, falling
        back to its primary vector when absent.
        """
        if records is None:
            records = self.store.get_all()
        return rank_records(query_vector, records, field=field, limit=limit)

    def find_related(self, url: str, limit: int = 5, field: str = "vector") -> List[SearchResult]:
        """Records most similar to the stored record at `url`, excluding itself."""
        target = self.store.get(url)
        if target is None:
            return []
        views, _ = split_vectorized([target], field)
        if not views:
            return []
        others = [r for r in self.store.get_all() if r.url != url]
        return rank_records(views[0].vector, others, field=field, limit=limit)

    def links(self, threshold: float, field: str = "vector") -> List[Link]:
        return build_links(self.store.get_all(), threshold, field)
