"""
Persisted process-wide settings: the current category taxonomy, the embedding
model that last succeeded, and the cluster label cache.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .db import get_db, init_db

TAXONOMY_KEY = "ai_categories"
TAXONOMY_UPDATED_KEY = "last_category_update"
EMBEDDING_MODEL_KEY = "embedding_model"
LABEL_CACHE_KEY = "label_cache"


@dataclass
class TaxonomyConfig:
    """Current category names plus the time of the sync that produced them."""
    categories: List[str] = field(default_factory=list)
    last_sync: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.categories


class ISettingsStore(ABC):
    """Abstract JSON-valued key/value settings storage."""

    @abstractmethod
    def get_value(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set_value(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete_value(self, key: str) -> None:
        pass

    def get_taxonomy(self) -> TaxonomyConfig:
        categories = self.get_value(TAXONOMY_KEY, [])
        if not isinstance(categories, list):
            categories = []
        return TaxonomyConfig(
            categories=[c for c in categories if isinstance(c, str) and c],
            last_sync=self.get_value(TAXONOMY_UPDATED_KEY)
        )

    def set_taxonomy(self, taxonomy: TaxonomyConfig) -> None:
        """Replace the persisted taxonomy wholesale."""
        self.set_value(TAXONOMY_KEY, list(taxonomy.categories))
        self.set_value(TAXONOMY_UPDATED_KEY, taxonomy.last_sync)

    def get_embedding_model(self, default: Optional[str] = None) -> Optional[str]:
        return self.get_value(EMBEDDING_MODEL_KEY, default) or default

    def set_embedding_model(self, model: str) -> None:
        self.set_value(EMBEDDING_MODEL_KEY, model)

    def get_label_cache(self, namespace: str = "clusters") -> Dict[str, str]:
        cache = self.get_value(f"{LABEL_CACHE_KEY}:{namespace}", {})
        return dict(cache) if isinstance(cache, dict) else {}

    def set_label_cache(self, cache: Dict[str, str], namespace: str = "clusters") -> None:
        self.set_value(f"{LABEL_CACHE_KEY}:{namespace}", dict(cache))


class InMemorySettingsStore(ISettingsStore):

    def __init__(self, values: Dict[str, Any] = None):
        self._values: Dict[str, str] = {}
        for key, value in (values or {}).items():
            self.set_value(key, value)

    def get_value(self, key: str, default: Any = None) -> Any:
        if key not in self._values:
            return default
        return json.loads(self._values[key])

    def set_value(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers never share mutable state with the store
        self._values[key] = json.dumps(value, ensure_ascii=False)

    def delete_value(self, key: str) -> None:
        self._values.pop(key, None)


class SQLiteSettingsStore(ISettingsStore):

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db(db_path)

    def get_value(self, key: str, default: Any = None) -> Any:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
        if not row:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            return default

    def set_value(self, key: str, value: Any) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                (key, json.dumps(value, ensure_ascii=False))
            )
            conn.commit()

    def delete_value(self, key: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            conn.commit()
