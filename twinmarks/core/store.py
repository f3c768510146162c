"""
Durable keyed table of saved-page records.

The URL is the primary key: `put` upserts, deletes of missing keys are no-ops,
and snapshot import merges by URL without touching unrelated records.
"""

import dataclasses
import json
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .config import UNCATEGORIZED
from .db import get_db, init_db
from .errors import SnapshotFormatError
from .schema import ATTRIBUTE_NAMES, CategoryCount, PageRecord, normalize_tags
from ..util.logging import logger

MUTABLE_FIELDS = frozenset(
    f.name for f in dataclasses.fields(PageRecord) if f.name != "url"
)


class IRecordStore(ABC):
    """Abstract interface for page record storage."""

    @abstractmethod
    def put(self, record: PageRecord) -> None:
        """Insert or replace the record stored under `record.url`."""
        pass

    @abstractmethod
    def get(self, url: str) -> Optional[PageRecord]:
        """Return the record for `url`, or None when it does not exist."""
        pass

    @abstractmethod
    def get_all(self) -> List[PageRecord]:
        """Return every record, vectorized or not."""
        pass

    @abstractmethod
    def remove(self, url: str) -> None:
        """Delete a record by URL."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all records from the store."""
        pass

    def put_many(self, records: Iterable[PageRecord]) -> int:
        count = 0
        for record in records:
            self.put(record)
            count += 1
        return count

    def remove_all(self, urls: Iterable[str]) -> None:
        for url in urls:
            self.remove(url)

    def count(self) -> int:
        return len(self.get_all())

    def update_fields(self, url: str, **fields: Any) -> Optional[PageRecord]:
        """Merge selected fields into an existing record, keeping everything else.

        Returns the updated record, or None when no record exists for `url`.
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        existing = self.get(url)
        if existing is None:
            return None

        updated = dataclasses.replace(existing, **fields)
        self.put(updated)
        logger.log_store_operation("update", url, {"fields": sorted(fields)})
        return updated

    def update_tags(self, url: str, tags: Sequence[str]) -> Optional[PageRecord]:
        return self.update_fields(url, tags=normalize_tags(tags))

    def update_notes(self, url: str, notes: Optional[str]) -> Optional[PageRecord]:
        return self.update_fields(url, notes=notes)

    def export_snapshot(self) -> str:
        """Serialize every record as a single-line JSON array."""
        records = self.get_all()
        logger.log_operation("store.export", "success", {"record_count": len(records)})
        return json.dumps([record.to_dict() for record in records], ensure_ascii=False)

    def import_snapshot(self, data: Union[str, bytes, List[Dict[str, Any]]], replace: bool = False) -> int:
        """Merge snapshot entries into the store by URL.

        Entries missing `url` or `vector`, or carrying wrongly typed fields, are
        skipped individually. With `replace`, the store is cleared only after the
        whole payload has been parsed and validated. Returns the number of
        records actually imported.
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise SnapshotFormatError(f"snapshot is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise SnapshotFormatError("snapshot must be a JSON array of records")

        accepted = []
        for index, item in enumerate(data):
            reason = _snapshot_entry_problem(item)
            if reason:
                url = item.get("url") if isinstance(item, dict) else None
                logger.log_import_skip(index, reason, url if isinstance(url, str) else None)
                continue
            try:
                accepted.append(PageRecord.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.log_import_skip(index, f"invalid fields: {e}", item.get("url"))

        if replace:
            self.clear()
        imported = self.put_many(accepted)
        logger.log_operation("store.import", "success", {
            "replace": replace,
            "received": len(data),
            "imported": imported,
            "skipped": len(data) - imported
        })
        return imported

    def category_stats(self, categories: Optional[Iterable[str]] = None) -> List[CategoryCount]:
        """Count records per category, most populated first.

        Records without a category land in the "uncategorized" bucket. When the
        current taxonomy is supplied, categories outside it count as
        uncategorized too. Zero-count buckets are omitted.
        """
        current = set(categories) if categories is not None else None
        counts = Counter()
        for record in self.get_all():
            name = record.category
            if not name or (current is not None and name not in current):
                name = UNCATEGORIZED
            counts[name] += 1

        return [
            CategoryCount(name=name, count=count)
            for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]


_TEXT_FIELDS = ("title", "description", "category", "notes", "text_content")


def _snapshot_entry_problem(item: Any) -> Optional[str]:
    """Return why a snapshot entry cannot be imported, or None when it is usable."""
    if not isinstance(item, dict):
        return "entry is not an object"
    url = item.get("url")
    if not isinstance(url, str) or not url.strip():
        return "missing url"
    vector = item.get("vector")
    if not isinstance(vector, list) or not vector:
        return "missing vector"
    if not _is_numeric_list(vector):
        return "vector contains non-numeric values"

    for key, value in item.items():
        if value is None:
            continue
        attr = ATTRIBUTE_NAMES.get(key, key)
        if attr in _TEXT_FIELDS and not isinstance(value, str):
            return f"{key} must be a string"
        if attr == "timestamp" and not _is_number(value):
            return "timestamp must be a number"
        if attr == "semantic_vector" and not _is_numeric_list(value):
            return "semanticVector contains non-numeric values"
        if attr == "tags" and (not isinstance(value, list) or not all(isinstance(t, str) for t in value)):
            return "tags must be a list of strings"
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_numeric_list(values: Any) -> bool:
    return isinstance(values, list) and all(_is_number(v) for v in values)


class InMemoryRecordStore(IRecordStore):
    """Dictionary-backed store, used for tests and ephemeral sessions."""

    def __init__(self, records: Iterable[PageRecord] = ()):
        self._records: Dict[str, PageRecord] = {}
        for record in records:
            self.put(record)

    def put(self, record: PageRecord) -> None:
        self._records[record.url] = dataclasses.replace(record)

    def get(self, url: str) -> Optional[PageRecord]:
        record = self._records.get(url)
        return dataclasses.replace(record) if record is not None else None

    def get_all(self) -> List[PageRecord]:
        return [dataclasses.replace(r) for r in self._records.values()]

    def remove(self, url: str) -> None:
        self._records.pop(url, None)

    def clear(self) -> None:
        self._records.clear()

    def count(self) -> int:
        return len(self._records)


class SQLiteRecordStore(IRecordStore):
    """SQLite-backed store; vectors and tags are stored as JSON text."""

    COLUMNS = ("url", "title", "vector", "semantic_vector", "description",
               "tags", "category", "notes", "text_content", "timestamp")

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db(db_path)

    def _to_row(self, record: PageRecord) -> tuple:
        return (
            record.url,
            record.title or "",
            json.dumps(record.vector) if record.vector else None,
            json.dumps(record.semantic_vector) if record.semantic_vector else None,
            record.description,
            json.dumps(record.tags, ensure_ascii=False),
            record.category,
            record.notes,
            record.text_content,
            int(record.timestamp),
        )

    def _from_row(self, row: tuple) -> PageRecord:
        url, title, vector, semantic_vector, description, tags, category, notes, text_content, timestamp = row
        return PageRecord(
            url=url,
            title=title,
            vector=json.loads(vector) if vector else None,
            semantic_vector=json.loads(semantic_vector) if semantic_vector else None,
            description=description,
            tags=json.loads(tags) if tags else [],
            category=category,
            notes=notes,
            text_content=text_content,
            timestamp=timestamp,
        )

    def _upsert(self, cursor, record: PageRecord) -> None:
        placeholders = ", ".join("?" for _ in self.COLUMNS)
        cursor.execute(
            f"INSERT OR REPLACE INTO pages ({', '.join(self.COLUMNS)}) VALUES ({placeholders})",
            self._to_row(record)
        )

    def put(self, record: PageRecord) -> None:
        with get_db(self.db_path) as conn:
            self._upsert(conn.cursor(), record)
            conn.commit()

    def put_many(self, records: Iterable[PageRecord]) -> int:
        count = 0
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            for record in records:
                self._upsert(cursor, record)
                count += 1
            conn.commit()
        return count

    def get(self, url: str) -> Optional[PageRecord]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {', '.join(self.COLUMNS)} FROM pages WHERE url = ?", (url,))
            row = cursor.fetchone()
            return self._from_row(row) if row else None

    def get_all(self) -> List[PageRecord]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {', '.join(self.COLUMNS)} FROM pages ORDER BY timestamp DESC")
            return [self._from_row(row) for row in cursor.fetchall()]

    def remove(self, url: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("DELETE FROM pages WHERE url = ?", (url,))
            conn.commit()

    def remove_all(self, urls: Iterable[str]) -> None:
        with get_db(self.db_path) as conn:
            conn.executemany("DELETE FROM pages WHERE url = ?", [(url,) for url in urls])
            conn.commit()

    def clear(self) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("DELETE FROM pages")
            conn.commit()

    def count(self) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM pages")
            return cursor.fetchone()[0]
