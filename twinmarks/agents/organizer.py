"""
Whole-collection organization: partition every vectorized page and name the
resulting clusters, keeping names stable through the persisted label cache.
"""

from typing import Iterable, List, Optional

from ..core.settings import ISettingsStore
from ..core.store import IRecordStore
from ..util.logging import logger
from ..vector.clustering import Cluster, partition
from .labeler import LabelAssigner, LabelCache


class ClusterOrganizer:
    """Partitions the record store and labels the clusters."""

    def __init__(self, store: IRecordStore, settings: ISettingsStore, labeler: LabelAssigner):
        self.store = store
        self.settings = settings
        self.labeler = labeler

    def organize(self, k: Optional[int] = None, naming_instruction: Optional[str] = None,
                 forbidden_names: Optional[Iterable[str]] = None, fallback_on_error: bool = True,
                 cache_namespace: str = "clusters") -> List[Cluster]:
        """Cluster the store and return named clusters.

        `k` defaults to the collection-size heuristic. New AI names are
        written back to the label cache under `cache_namespace`.
        """
        records = self.store.get_all()
        clusters = partition(records, k)
        if not clusters:
            logger.log_operation("organizer.organize", "empty", {"records": len(records)})
            return clusters

        cache = LabelCache.load(self.settings, cache_namespace)
        self.labeler.name_clusters(
            clusters,
            naming_instruction=naming_instruction,
            forbidden_names=forbidden_names,
            cache=cache,
            fallback_on_error=fallback_on_error
        )
        cache.save(self.settings, cache_namespace)

        logger.log_operation("organizer.organize", "success", {
            "records": len(records),
            "clusters": len(clusters),
            "namespace": cache_namespace
        })
        return clusters
