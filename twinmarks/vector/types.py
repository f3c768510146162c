"""
Result types returned by similarity search.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class SearchResult:
    """Represents a ranked record from similarity search."""

    url: str
    """Key of the matching record"""

    title: str
    """Title of the matching page"""

    score: float
    """Cosine similarity against the query vector"""

    description: Optional[str] = None
    """AI-generated summary of the page, if any"""

    category: Optional[str] = None
    """Category label stored on the record, if any"""

    timestamp: int = 0
    """Write time of the record, used as a tie-break"""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "score": self.score,
            "description": self.description,
            "category": self.category,
        }


@dataclass(frozen=True)
class Link:
    """An edge between two records whose similarity exceeds a threshold."""

    source: str
    target: str
    score: float
