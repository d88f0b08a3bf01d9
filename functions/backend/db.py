"""
Document store abstraction shaped after Firestore.

Three implementations share the `DbClient` interface:
- `InMemoryDbClient` for development and tests,
- `SqlDbClient` which keeps JSON documents in a SQLAlchemy table (Postgres in
  production, SQLite in tests),
- `FirestoreDbClient` which talks to Cloud Firestore through firebase_admin.

Collections are addressed by slash-separated paths, e.g. "sifs" or
"users/{uid}/folders". Documents are plain dicts with camelCase keys.
"""

from __future__ import annotations

import copy
import hashlib
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Sequence

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

FIRESTORE_BATCH_LIMIT = 500

_MISSING = object()

# Receives the current document and returns the fields to write, or None to
# leave the document untouched.
DocumentUpdater = Callable[[dict], Optional[dict]]


class DocumentNotFoundError(KeyError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


@dataclass(frozen=True)
class FieldFilter:
    """A single `where` clause. `op` uses Firestore operator names."""

    field: str
    op: str
    value: Any


@dataclass
class Document:
    id: str
    data: dict


class DbClient(Protocol):
    """Interface for document access."""

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        ...

    def add(self, collection: str, data: dict) -> str:
        ...

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        ...

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        ...

    def batch_delete(self, collection: str, doc_ids: Iterable[str]) -> None:
        ...

    def increment(
        self, collection: str, doc_id: str, field: str, amount: float = 1
    ) -> None:
        ...

    def update_if(
        self,
        collection: str,
        doc_id: str,
        field: str,
        allowed_values: Iterable[Any],
        data: dict,
    ) -> Optional[dict]:
        ...

    def update_with(
        self, collection: str, doc_id: str, updater: DocumentUpdater
    ) -> Optional[dict]:
        """
        Atomically applies `updater` to the current document. Returns the
        updated document, or None if it does not exist or nothing was written.
        """
        ...


def text_document_id(text: str) -> str:
    """Stable document id for free text, which may contain characters ids cannot."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def _get_field(data: dict, path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _matches(data: dict, flt: FieldFilter) -> bool:
    value = _get_field(data, flt.field)
    if flt.op == "!=":
        return value is not _MISSING and value != flt.value
    if value is _MISSING:
        return False
    if flt.op == "==":
        return value == flt.value
    if flt.op == "in":
        return value in flt.value
    if flt.op == "array_contains":
        return isinstance(value, list) and flt.value in value
    if flt.op == "array_contains_any":
        return isinstance(value, list) and any(v in value for v in flt.value)
    if value is None or flt.value is None:
        return False
    try:
        if flt.op == "<":
            return value < flt.value
        if flt.op == "<=":
            return value <= flt.value
        if flt.op == ">":
            return value > flt.value
        if flt.op == ">=":
            return value >= flt.value
    except TypeError:
        return False
    raise ValueError(f"Unsupported filter operator: {flt.op}")


def filter_and_sort(
    documents: Iterable[Document],
    filters: Sequence[FieldFilter],
    order_by: Optional[str],
    descending: bool,
    limit: Optional[int],
) -> list[Document]:
    """Applies Firestore query semantics to documents already in memory."""
    results = [
        doc for doc in documents if all(_matches(doc.data, f) for f in filters)
    ]
    if order_by:
        # Firestore drops documents that lack the order_by field.
        results = [
            doc
            for doc in results
            if _get_field(doc.data, order_by) not in (_MISSING, None)
        ]
        results.sort(key=lambda d: _get_field(d.data, order_by), reverse=descending)
    if limit is not None:
        results = results[:limit]
    return results


class InMemoryDbClient:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.RLock()

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        docs = self._collection(collection)
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise DocumentNotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        documents = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
        ]
        return filter_and_sort(documents, filters, order_by, descending, limit)

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        docs = self._collection(collection)
        missing = [doc_id for doc_id in updates if doc_id not in docs]
        if missing:
            raise DocumentNotFoundError(collection, missing[0])
        for doc_id, data in updates.items():
            docs[doc_id].update(copy.deepcopy(data))

    def batch_delete(self, collection: str, doc_ids: Iterable[str]) -> None:
        for doc_id in doc_ids:
            self.delete(collection, doc_id)

    def increment(
        self, collection: str, doc_id: str, field: str, amount: float = 1
    ) -> None:
        doc = self._collection(collection).setdefault(doc_id, {})
        doc[field] = doc.get(field, 0) + amount

    def update_if(
        self,
        collection: str,
        doc_id: str,
        field: str,
        allowed_values: Iterable[Any],
        data: dict,
    ) -> Optional[dict]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None or doc.get(field) not in list(allowed_values):
                return None
            doc.update(copy.deepcopy(data))
            return copy.deepcopy(doc)

    def update_with(
        self, collection: str, doc_id: str, updater: DocumentUpdater
    ) -> Optional[dict]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                return None
            data = updater(copy.deepcopy(doc))
            if data is None:
                return None
            doc.update(copy.deepcopy(data))
            return copy.deepcopy(doc)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Documents live in a single JSON table keyed by (collection, doc_id); query
    filtering and ordering run in Python over the collection's rows.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            return dict(row.data) if row else None

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                row.data = {**row.data, **data} if merge else dict(data)
                row.updated_at = time.time()
            else:
                session.add(
                    DocumentRow(
                        collection=collection,
                        doc_id=doc_id,
                        data=dict(data),
                        updated_at=time.time(),
                    )
                )
            session.commit()

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if not row:
                raise DocumentNotFoundError(collection, doc_id)
            row.data = {**row.data, **data}
            row.updated_at = time.time()
            session.commit()

    def delete(self, collection: str, doc_id: str) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                session.delete(row)
                session.commit()

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        with self.Session() as session:
            stmt = select(DocumentRow).where(DocumentRow.collection == collection)
            rows = session.execute(stmt).scalars().all()
            documents = [Document(id=row.doc_id, data=dict(row.data)) for row in rows]
        return filter_and_sort(documents, filters, order_by, descending, limit)

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        now = time.time()
        with self.Session() as session:
            for doc_id, data in updates.items():
                row = session.get(DocumentRow, (collection, doc_id))
                if not row:
                    session.rollback()
                    raise DocumentNotFoundError(collection, doc_id)
                row.data = {**row.data, **data}
                row.updated_at = now
            session.commit()

    def batch_delete(self, collection: str, doc_ids: Iterable[str]) -> None:
        with self.Session() as session:
            for doc_id in doc_ids:
                row = session.get(DocumentRow, (collection, doc_id))
                if row:
                    session.delete(row)
            session.commit()

    def increment(
        self, collection: str, doc_id: str, field: str, amount: float = 1
    ) -> None:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id), with_for_update=True)
            if row:
                data = dict(row.data)
                data[field] = data.get(field, 0) + amount
                row.data = data
                row.updated_at = time.time()
            else:
                session.add(
                    DocumentRow(
                        collection=collection,
                        doc_id=doc_id,
                        data={field: amount},
                        updated_at=time.time(),
                    )
                )
            session.commit()

    def update_if(
        self,
        collection: str,
        doc_id: str,
        field: str,
        allowed_values: Iterable[Any],
        data: dict,
    ) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id), with_for_update=True)
            if not row or row.data.get(field) not in list(allowed_values):
                return None
            row.data = {**row.data, **data}
            row.updated_at = time.time()
            session.commit()
            return dict(row.data)

    def update_with(
        self, collection: str, doc_id: str, updater: DocumentUpdater
    ) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id), with_for_update=True)
            if not row:
                return None
            data = updater(dict(row.data))
            if data is None:
                session.rollback()
                return None
            row.data = {**row.data, **data}
            row.updated_at = time.time()
            session.commit()
            return dict(row.data)


_FIRESTORE_OPERATORS = {
    "==": "==",
    "!=": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
    "in": "in",
    "array_contains": "array-contains",
    "array_contains_any": "array-contains-any",
}


class FirestoreDbClient:
    """Cloud Firestore implementation built on the firebase_admin client."""

    def __init__(self, client=None):
        self.client = client or firestore.client()

    def _ref(self, collection: str, doc_id: str):
        return self.client.collection(collection).document(doc_id)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self._ref(collection, doc_id).get()
        return snapshot.to_dict() if snapshot.exists else None

    def set(
        self, collection: str, doc_id: str, data: dict, *, merge: bool = False
    ) -> None:
        self._ref(collection, doc_id).set(data, merge=merge)

    def add(self, collection: str, data: dict) -> str:
        _, doc_ref = self.client.collection(collection).add(data)
        return doc_ref.id

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        try:
            self._ref(collection, doc_id).update(data)
        except google_exceptions.NotFound:
            raise DocumentNotFoundError(collection, doc_id) from None

    def delete(self, collection: str, doc_id: str) -> None:
        self._ref(collection, doc_id).delete()

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        query = self.client.collection(collection)
        for flt in filters:
            query = query.where(
                filter=FirestoreFieldFilter(
                    flt.field, _FIRESTORE_OPERATORS[flt.op], flt.value
                )
            )
        if order_by:
            direction = (
                firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return [Document(id=snap.id, data=snap.to_dict()) for snap in query.stream()]

    def _commit_in_chunks(self, operations: list) -> None:
        for start in range(0, len(operations), FIRESTORE_BATCH_LIMIT):
            batch = self.client.batch()
            for apply in operations[start : start + FIRESTORE_BATCH_LIMIT]:
                apply(batch)
            batch.commit()

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        operations = [
            (lambda batch, ref=self._ref(collection, doc_id), data=data: batch.update(ref, data))
            for doc_id, data in updates.items()
        ]
        try:
            self._commit_in_chunks(operations)
        except google_exceptions.NotFound as e:
            raise DocumentNotFoundError(collection, str(e)) from e

    def batch_delete(self, collection: str, doc_ids: Iterable[str]) -> None:
        operations = [
            (lambda batch, ref=self._ref(collection, doc_id): batch.delete(ref))
            for doc_id in doc_ids
        ]
        self._commit_in_chunks(operations)

    def increment(
        self, collection: str, doc_id: str, field: str, amount: float = 1
    ) -> None:
        self._ref(collection, doc_id).set(
            {field: firestore.Increment(amount)}, merge=True
        )

    def update_if(
        self,
        collection: str,
        doc_id: str,
        field: str,
        allowed_values: Iterable[Any],
        data: dict,
    ) -> Optional[dict]:
        doc_ref = self._ref(collection, doc_id)
        allowed = list(allowed_values)

        @firestore.transactional
        def _update_in_transaction(transaction) -> Optional[dict]:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            current = snapshot.to_dict()
            if current.get(field) not in allowed:
                return None
            transaction.update(doc_ref, data)
            return {**current, **data}

        return _update_in_transaction(self.client.transaction())

    def update_with(
        self, collection: str, doc_id: str, updater: DocumentUpdater
    ) -> Optional[dict]:
        doc_ref = self._ref(collection, doc_id)

        @firestore.transactional
        def _update_in_transaction(transaction) -> Optional[dict]:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            current = snapshot.to_dict()
            data = updater(dict(current))
            if data is None:
                return None
            transaction.update(doc_ref, data)
            return {**current, **data}

        return _update_in_transaction(self.client.transaction())


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)
