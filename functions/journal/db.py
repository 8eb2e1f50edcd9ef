"""
Document store abstraction for Firestore and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import logging
import operator
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Sequence

from google.cloud.firestore_v1.base_query import FieldFilter

logger = logging.getLogger(__name__)

# Firestore rejects batches larger than this.
BATCH_SIZE = 500

QueryFilter = tuple[str, str, Any]


@dataclass
class DocumentRecord:
    id: str
    data: dict


class DbClient(Protocol):
    """Interface for document access."""

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        limit: Optional[int] = None,
    ) -> list[DocumentRecord]:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def add(self, collection: str, data: dict) -> str:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        ...

    def write_many(
        self, collection: str, docs: Iterable[tuple[str, dict]]
    ) -> int:
        ...


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
    "array-contains": lambda value, item: isinstance(value, list) and item in value,
}


def _matches(data: dict, filters: Sequence[QueryFilter]) -> bool:
    for field, op, value in filters:
        if field not in data:
            return False
        try:
            if not _OPERATORS[op](data[field], value):
                return False
        except TypeError:
            # Firestore never matches values of a different type.
            return False
    return True


def _deep_merge(target: dict, updates: dict) -> dict:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _chunks(items: list, size: int) -> Iterable[list]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class InMemoryDbClient:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()

    def _collection(self, name: str) -> Dict[str, dict]:
        return self.collections.setdefault(name, {})

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        limit: Optional[int] = None,
    ) -> list[DocumentRecord]:
        results: list[DocumentRecord] = []
        for doc_id, data in self._collection(collection).items():
            if _matches(data, filters):
                results.append(DocumentRecord(id=doc_id, data=copy.deepcopy(data)))
                if limit is not None and len(results) >= limit:
                    break
        return results

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        docs = self._collection(collection)
        if merge and doc_id in docs:
            _deep_merge(docs[doc_id], data)
        else:
            docs[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise KeyError(f"No document to update: {collection}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(data))

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        count = 0
        for doc_id in list(doc_ids):
            self.delete(collection, doc_id)
            count += 1
        return count

    def write_many(
        self, collection: str, docs: Iterable[tuple[str, dict]]
    ) -> int:
        count = 0
        for doc_id, data in docs:
            self.set(collection, doc_id, data)
            count += 1
        return count


class FirestoreDbClient:
    """
    Firestore-backed implementation wrapping a ``google.cloud.firestore.Client``.
    """

    def __init__(self, client):
        self.client = client

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        limit: Optional[int] = None,
    ) -> list[DocumentRecord]:
        query = self.client.collection(collection)
        for field, op, value in filters:
            query = query.where(filter=FieldFilter(field, op, value))
        if limit is not None:
            query = query.limit(limit)
        return [
            DocumentRecord(id=snapshot.id, data=snapshot.to_dict() or {})
            for snapshot in query.stream()
        ]

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self.client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        self.client.collection(collection).document(doc_id).set(data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        self.client.collection(collection).document(doc_id).update(data)

    def add(self, collection: str, data: dict) -> str:
        _, doc_ref = self.client.collection(collection).add(data)
        return doc_ref.id

    def delete(self, collection: str, doc_id: str) -> None:
        self.client.collection(collection).document(doc_id).delete()

    def _commit_in_batches(
        self, items: list, apply: Callable[[Any, Any], None]
    ) -> int:
        count = 0
        for chunk in _chunks(items, BATCH_SIZE):
            batch = self.client.batch()
            for item in chunk:
                apply(batch, item)
            batch.commit()
            count += len(chunk)
            logger.info("Committed batch of %d documents", len(chunk))
        return count

    def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        coll = self.client.collection(collection)
        return self._commit_in_batches(
            list(doc_ids), lambda batch, doc_id: batch.delete(coll.document(doc_id))
        )

    def write_many(
        self, collection: str, docs: Iterable[tuple[str, dict]]
    ) -> int:
        coll = self.client.collection(collection)
        return self._commit_in_batches(
            list(docs),
            lambda batch, item: batch.set(coll.document(item[0]), item[1]),
        )
