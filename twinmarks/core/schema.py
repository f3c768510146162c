"""
Record types for saved pages.

A stored page either carries a primary vector or it does not. Similarity and
clustering code only accept `VectorView` objects, built by `split_vectorized`,
so an absent vector can never reach the numeric code.
"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

# Snapshot / wire field names (camelCase) keyed by attribute name
WIRE_NAMES = {
    "url": "url",
    "title": "title",
    "vector": "vector",
    "semantic_vector": "semanticVector",
    "description": "description",
    "tags": "tags",
    "category": "category",
    "notes": "notes",
    "text_content": "textContent",
    "timestamp": "timestamp",
}
ATTRIBUTE_NAMES = {wire: attr for attr, wire in WIRE_NAMES.items()}


def now_ms() -> int:
    """Current write time in epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Trim, drop empties and dedupe case-insensitively, keeping first-seen casing."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = [tags]
    seen = set()
    normalized = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip()
        if not cleaned:
            continue
        folded = cleaned.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        normalized.append(cleaned)
    return normalized


@dataclass
class PageRecord:
    """One saved page, keyed by its canonical URL."""

    url: str
    title: str = ""
    vector: Optional[List[float]] = None
    semantic_vector: Optional[List[float]] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    category: Optional[str] = None
    notes: Optional[str] = None
    text_content: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    def __post_init__(self):
        self.tags = normalize_tags(self.tags)

    @property
    def has_vector(self) -> bool:
        return bool(self.vector)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the snapshot field names."""
        data = asdict(self)
        return {WIRE_NAMES[k]: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageRecord':
        """Build a record from snapshot data; accepts camelCase or attribute names."""
        kwargs = {}
        for key, value in data.items():
            attr = ATTRIBUTE_NAMES.get(key, key)
            if attr in WIRE_NAMES:
                kwargs[attr] = value
        if kwargs.get("tags") is None:
            kwargs.pop("tags", None)
        if kwargs.get("timestamp") is None:
            kwargs.pop("timestamp", None)
        if kwargs.get("title") is None:
            kwargs["title"] = ""
        return cls(**kwargs)


@dataclass(frozen=True)
class VectorView:
    """A record paired with the numpy vector chosen for ranking or clustering."""

    record: PageRecord
    vector: np.ndarray

    @property
    def url(self) -> str:
        return self.record.url


def split_vectorized(records: Iterable[PageRecord], field_name: str = "vector") -> Tuple[List[VectorView], List[PageRecord]]:
    """Split records into rankable views and records lacking a usable vector.

    `field_name="semantic_vector"` falls back to the primary vector for records
    that have no semantic vector.
    """
    if field_name not in ("vector", "semantic_vector"):
        raise ValueError(f"field must be 'vector' or 'semantic_vector', got {field_name!r}")

    valid: List[VectorView] = []
    unvectorized: List[PageRecord] = []
    for record in records:
        values = getattr(record, field_name)
        if not values and field_name == "semantic_vector":
            values = record.vector
        if not values:
            unvectorized.append(record)
            continue
        valid.append(VectorView(record=record, vector=np.asarray(values, dtype=np.float64)))
    return valid, unvectorized


@dataclass
class CategoryCount:
    name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}
