from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, Iterator, List, Optional
from uuid import uuid4

from models.records import Predicate, Record
from settings import get_settings

logger = logging.getLogger(__name__)

_DATE_TAG = "$date"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATE_TAG: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(payload: Dict[str, Any]) -> Any:
    if len(payload) == 1 and _DATE_TAG in payload:
        return datetime.fromisoformat(payload[_DATE_TAG])
    return payload


class MockDocumentStore:
    """In-process stand-in for a document database with named collections."""

    def __init__(self, name: str = "default", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._collections: Dict[str, Dict[str, Record]] = {}
        self.persistence_path = persistence_path
        self._lock = RLock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def create(self, entity_set: str, data: Record, record_id: Optional[str] = None) -> Record:
        with self._lock:
            stored = self._insert(entity_set, data, record_id)
            self._persist()
            return copy.deepcopy(stored)

    def create_many(self, entity_set: str, items: Iterable[Record]) -> List[Record]:
        """Insert a batch; nothing is written if any id collides."""
        batch = [copy.deepcopy(item) for item in items]
        with self._lock:
            collection = self._collections.get(entity_set, {})
            seen: set[str] = set()
            for item in batch:
                identifier = item.get("id")
                if identifier is None:
                    continue
                if identifier in collection or identifier in seen:
                    raise ValueError(f"Record {identifier!r} already exists in {entity_set!r}.")
                seen.add(identifier)
            created = [self._insert(entity_set, item) for item in batch]
            self._persist()
            return [copy.deepcopy(item) for item in created]

    def get_by_id(self, entity_set: str, record_id: str) -> Optional[Record]:
        with self._lock:
            item = self._collections.get(entity_set, {}).get(record_id)
            if item is None:
                return None
            return copy.deepcopy(item)

    def update(self, entity_set: str, record_id: str, changes: Record) -> Record:
        with self._lock:
            item = self._collections.get(entity_set, {}).get(record_id)
            if item is None:
                raise KeyError(f"Record {record_id!r} not found in {entity_set!r}.")
            item.update(copy.deepcopy(changes))
            item["id"] = record_id
            self._persist()
            return copy.deepcopy(item)

    def increment(self, entity_set: str, record_id: str, field_name: str, amount: float) -> Record:
        """Atomically add ``amount`` to a numeric field (missing counts as 0)."""
        with self._lock:
            item = self._collections.get(entity_set, {}).get(record_id)
            if item is None:
                raise KeyError(f"Record {record_id!r} not found in {entity_set!r}.")
            current = item.get(field_name) or 0
            item[field_name] = current + amount
            self._persist()
            return copy.deepcopy(item)

    def query(
        self,
        entity_set: str,
        predicates: Iterable[Predicate] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Record]:
        constraints = list(predicates)
        with self._lock:
            items = list(self._collections.get(entity_set, {}).values())
            matched = [
                copy.deepcopy(item)
                for item in items
                if all(predicate.matches(item) for predicate in constraints)
            ]
        if order_by is not None:
            # Records missing the ordering field sort last.
            present = [item for item in matched if item.get(order_by) is not None]
            missing = [item for item in matched if item.get(order_by) is None]
            present.sort(key=lambda item: item[order_by], reverse=descending)
            matched = present + missing
        if limit is not None:
            matched = matched[:limit]
        return matched

    def scan(self, entity_set: str) -> List[Record]:
        """Return deep copies of every record in a collection."""
        return self.query(entity_set)

    def collections(self) -> List[str]:
        with self._lock:
            return sorted(self._collections)

    def _insert(self, entity_set: str, data: Record, record_id: Optional[str] = None) -> Record:
        collection = self._collections.setdefault(entity_set, {})
        identifier = record_id or data.get("id") or str(uuid4())
        if identifier in collection:
            raise ValueError(f"Record {identifier!r} already exists in {entity_set!r}.")
        stored = copy.deepcopy(data)
        stored["id"] = identifier
        collection[identifier] = stored
        return stored

    @contextmanager
    def transaction(self) -> Iterator["MockDocumentStore"]:
        """Hold the store lock so a read-check-write sequence is atomic."""
        with self._lock:
            yield self

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(
            json.dumps(self._collections, indent=2, sort_keys=True, default=_encode)
        )

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw, object_hook=_decode)
        except (OSError, json.JSONDecodeError, ValueError):
            logger.warning(
                "Ignoring unreadable store file",
                extra={"reason": str(self.persistence_path)},
            )
            data = {}

        for entity_set, items in data.items():
            self._collections[entity_set] = dict(items)


@lru_cache
def build_default_store(path: Optional[str] = None) -> MockDocumentStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return MockDocumentStore(name="waste", persistence_path=persistence)
