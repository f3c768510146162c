"""
Coarse category taxonomy over the whole collection, and query-time category
selection for retrieval.
"""

import dataclasses
from typing import List, Sequence

from ..core.config import CATEGORY_COUNT, GENERATION_MODEL, RAG_MAX_SELECTED_CATEGORIES
from ..core.errors import MalformedResponse, OracleFailure
from ..core.schema import CategoryCount, now_ms
from ..core.settings import ISettingsStore, TaxonomyConfig
from ..core.store import IRecordStore
from ..util.logging import logger
from .gateway import EmbeddingGateway, parse_json_response
from .labeler import LabelAssigner
from .organizer import ClusterOrganizer

CATEGORY_NAMING_INSTRUCTION = (
    "Broad, mutually exclusive category names that together cover everything saved, "
    "for example \"Programming & IT\", \"Cooking & Recipes\" or \"Film & Animation\"."
)


class CategorySync:
    """Rebuilds the taxonomy and writes a category onto every clustered record."""

    def __init__(self, store: IRecordStore, settings: ISettingsStore, labeler: LabelAssigner):
        self.store = store
        self.settings = settings
        self.organizer = ClusterOrganizer(store, settings, labeler)

    def sync(self, target_category_count: int = CATEGORY_COUNT) -> List[CategoryCount]:
        """Re-partition the collection into broad categories.

        Labeling failures abort the sync before any record or the taxonomy
        is touched. The new taxonomy replaces the previous one.
        """
        clusters = self.organizer.organize(
            k=target_category_count,
            naming_instruction=CATEGORY_NAMING_INSTRUCTION,
            fallback_on_error=False,
            cache_namespace="categories"
        )
        if not clusters:
            logger.log_operation("categories.sync", "empty")
            return []

        assignments = {url: cluster.name for cluster in clusters for url in cluster.urls}
        updated = []
        for record in self.store.get_all():
            name = assignments.get(record.url)
            if name and record.category != name:
                updated.append(dataclasses.replace(record, category=name))
        self.store.put_many(updated)

        stats = [CategoryCount(name=cluster.name, count=len(cluster)) for cluster in clusters]
        self.settings.set_taxonomy(TaxonomyConfig(
            categories=[c.name for c in stats],
            last_sync=now_ms()
        ))

        logger.log_operation("categories.sync", "success", {
            "categories": len(stats),
            "records_updated": len(updated),
            "requested": target_category_count
        })
        return stats


def build_selection_prompt(query: str, categories: Sequence[str]) -> str:
    return (
        f"From the list below, choose at most {RAG_MAX_SELECTED_CATEGORIES} categories "
        "most relevant to the search query.\n"
        "Reply with only the chosen category names as a JSON array.\n\n"
        f"Search query: {query}\n\n"
        "Categories:\n"
        f"{', '.join(categories)}\n\n"
        "Output format:\n"
        "[\"Category A\", \"Category B\"]"
    )


def select_relevant_categories(query: str, categories: Sequence[str], gateway: EmbeddingGateway,
                               model: str = GENERATION_MODEL) -> List[str]:
    """Ask the oracle which categories fit the query.

    Only names from `categories` are returned, at most three. Oracle or
    parse failures select nothing.
    """
    if not categories:
        return []

    try:
        response = gateway.generate(build_selection_prompt(query, categories), model)
        selected = parse_json_response(response, list)
    except (OracleFailure, MalformedResponse) as e:
        logger.warning(f"Category selection failed: {e}")
        return []

    allowed = set(categories)
    result = []
    for name in selected:
        if isinstance(name, str) and name in allowed and name not in result:
            result.append(name)
    return result[:RAG_MAX_SELECTED_CATEGORIES]
