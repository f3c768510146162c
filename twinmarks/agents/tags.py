"""
Tag vocabulary consolidation.

The oracle proposes a mapping old tag -> new tag; applying it rewrites record
tags and re-normalizes them so merged tags collapse.
"""

import dataclasses
import json
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..core.config import GENERATION_MODEL
from ..core.errors import MalformedResponse
from ..core.schema import PageRecord, normalize_tags
from ..core.store import IRecordStore
from ..util.logging import logger
from .gateway import EmbeddingGateway, parse_json_response

CATCH_ALL_TAG = "Other"


def collect_tags(records: Iterable[PageRecord]) -> List[Tuple[str, int]]:
    """Tag vocabulary of `records` with usage counts, most frequent first."""
    counts = Counter(tag for record in records for tag in record.tags)
    return sorted(counts.items(), key=lambda item: (-item[1], item[0].casefold()))


def build_optimization_prompt(tags: List[str], target_count: Optional[int] = None) -> str:
    if target_count:
        count_instruction = (
            f"Target number of tags: **at most {target_count}**.\n"
            "Never exceed this number. To stay within it, drop fine-grained distinctions and boldly "
            "merge into broad categories (for example \"Technology\", \"Design\", \"Business\", "
            f"\"Lifestyle\", \"Tools\"). Tags that fit nowhere may go into \"{CATCH_ALL_TAG}\"; "
            "some loss of precision is acceptable."
        )
    else:
        count_instruction = (
            "Avoid over-merging into abstract categories. Only merge obvious spelling variants, "
            "case variants and exact synonyms."
        )

    return (
        "Create a mapping that cleans up and consolidates the tag list below.\n\n"
        f"Tags:\n{json.dumps(tags, ensure_ascii=False)}\n\n"
        f"{count_instruction}\n\n"
        "Requirements:\n"
        "1. Reply in JSON.\n"
        "2. The format is {\"original tag\": \"new tag\", ...}.\n"
        "3. Include every tag whose mapping changes; when a target count is given, include all tags.\n"
        "4. Keep widely used technical terms and proper nouns (React, Python, AWS) as they are.\n"
        "5. Unify tags that differ only in letter case.\n"
        "6. Do not include any text other than the JSON.\n\n"
        "Example with a target of 3:\n"
        "Input: [\"JS\", \"JavaScript\", \"React.js\", \"Python\", \"Machine learning\", \"AI\", \"Recipes\"]\n"
        "Output: {\"JS\": \"Programming\", \"JavaScript\": \"Programming\", \"React.js\": \"Programming\", "
        "\"Python\": \"Programming\", \"Machine learning\": \"AI\", \"AI\": \"AI\", \"Recipes\": \"Lifestyle\"}"
    )


class TagOptimizer:
    """Asks the oracle for a tag consolidation mapping."""

    def __init__(self, gateway: EmbeddingGateway, model: str = GENERATION_MODEL):
        self.gateway = gateway
        self.model = model

    def optimize(self, tags: Iterable[str], target_count: Optional[int] = None) -> Dict[str, str]:
        """Return a mapping old tag -> new tag.

        Without `target_count` only clear duplicates are merged; with it the
        result should use at most that many distinct tags. Any response that
        is not a JSON object of strings raises MalformedResponse.
        """
        tags = [t for t in tags if t]
        if not tags:
            return {}

        response = self.gateway.generate(build_optimization_prompt(tags, target_count), self.model)
        mapping = parse_json_response(response, dict)
        for old, new in mapping.items():
            if not isinstance(new, str) or not new.strip():
                raise MalformedResponse(f"Tag mapping for {old!r} is not a non-empty string", raw_text=response)

        mapping = {old: new.strip() for old, new in mapping.items()}
        logger.log_operation("tags.optimize", "success", {
            "tags": len(tags),
            "mapped": len(mapping),
            "target_count": target_count,
            "resulting_tags": len({new.casefold() for new in mapping.values()})
        })
        return mapping


def apply_tag_mapping(store: IRecordStore, mapping: Mapping[str, str]) -> int:
    """Rewrite record tags through `mapping` and return how many records changed.

    Tags missing from the mapping are kept; duplicates created by merging
    collapse case-insensitively. Notes and category are untouched.
    """
    if not mapping:
        return 0

    updated = []
    for record in store.get_all():
        if not record.tags:
            continue
        new_tags = normalize_tags(mapping.get(tag, tag) for tag in record.tags)
        if new_tags != record.tags:
            updated.append(dataclasses.replace(record, tags=new_tags))

    store.put_many(updated)
    logger.log_operation("tags.apply", "success", {"mapping_size": len(mapping), "records_updated": len(updated)})
    return len(updated)
