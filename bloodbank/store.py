"""
Document store: collection-scoped get/set/add/update/delete with atomic
write batches, server-side timestamps and an array-append merge.

``SqlDocumentStore`` keeps every document as a JSON row. Array fields are
stored one element per row in ``document_items``; ``ArrayAppend`` therefore
inserts rows and never rewrites the elements already stored, so concurrent
appends to the same document cannot lose each other.
"""

import secrets
import string
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from bloodbank.database import document_items, documents

_ID_CHARS = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


# Replaced by the commit time of the write that carries it.
SERVER_TIMESTAMP = _ServerTimestamp()


class ArrayAppend:
    """Update-only sentinel: append *values* to an array field."""

    def __init__(self, *values):
        self.values = values

    def __repr__(self):
        return f"ArrayAppend{self.values!r}"


class StoreError(Exception):
    pass


class DocumentNotFound(StoreError):
    def __init__(self, collection, doc_id):
        super().__init__(f"No document {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class DocumentAlreadyExists(StoreError):
    def __init__(self, collection, doc_id):
        super().__init__(f"Document {collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


def generate_document_id(length: int = AUTO_ID_LENGTH) -> str:
    return "".join(secrets.choice(_ID_CHARS) for _ in range(length))


def resolve_sentinels(value, stamp: str):
    """Replace SERVER_TIMESTAMP anywhere inside *value* with *stamp*."""
    if value is SERVER_TIMESTAMP:
        return stamp
    if isinstance(value, dict):
        return {k: resolve_sentinels(v, stamp) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_sentinels(v, stamp) for v in value]
    return value


class WriteBatch:
    """Queue of writes committed all-or-nothing by ``commit()``."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._writes: List[Tuple[str, str, str, Any]] = []

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]):
        self._writes.append(("create", collection, doc_id, data))
        return self

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]):
        self._writes.append(("set", collection, doc_id, data))
        return self

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        self._writes.append(("update", collection, doc_id, fields))
        return self

    def delete(self, collection: str, doc_id: str):
        self._writes.append(("delete", collection, doc_id, None))
        return self

    def __len__(self):
        return len(self._writes)

    def commit(self) -> None:
        writes, self._writes = self._writes, []
        if writes:
            self._store._commit(writes)


class DocumentStore(ABC):
    """Interface of the document database used by the operations."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def list(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        ...

    @abstractmethod
    def _commit(self, writes) -> None:
        ...

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.batch().set(collection, doc_id, data).commit()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = generate_document_id()
        self.batch().create(collection, doc_id, data).commit()
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.batch().update(collection, doc_id, fields).commit()

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()


class SqlDocumentStore(DocumentStore):
    """DocumentStore on a SQLAlchemy engine (tables from bloodbank.database)."""

    def __init__(self, engine):
        self._engine = engine

    # ── Reads ────────────────────────────────────────────────────────

    def get(self, collection, doc_id):
        with self._engine.connect() as conn:
            row = conn.execute(
                select(documents.c.data).where(self._doc_filter(documents, collection, doc_id))
            ).first()
            if row is None:
                return None
            items = conn.execute(
                select(document_items.c.field, document_items.c.value)
                .where(self._doc_filter(document_items, collection, doc_id))
                .order_by(document_items.c.id)
            ).all()

        data = dict(row.data)
        for item in items:
            data.setdefault(item.field, []).append(item.value)
        return data

    def list(self, collection):
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(documents.c.doc_id, documents.c.data)
                .where(documents.c.collection == collection)
                .order_by(documents.c.created_at, documents.c.doc_id)
            ).all()
            items = conn.execute(
                select(document_items.c.doc_id, document_items.c.field, document_items.c.value)
                .where(document_items.c.collection == collection)
                .order_by(document_items.c.id)
            ).all()

        arrays = defaultdict(list)
        for item in items:
            arrays[item.doc_id].append((item.field, item.value))

        out = []
        for row in rows:
            data = dict(row.data)
            for name, value in arrays.get(row.doc_id, []):
                data.setdefault(name, []).append(value)
            out.append((row.doc_id, data))
        return out

    # ── Writes ───────────────────────────────────────────────────────

    def _commit(self, writes):
        now = datetime.now(timezone.utc)
        stamp = now.isoformat()
        with self._engine.begin() as conn:
            for op, collection, doc_id, data in writes:
                if op == "create":
                    self._apply_create(conn, collection, doc_id, data, now, stamp)
                elif op == "set":
                    self._apply_set(conn, collection, doc_id, data, now, stamp)
                elif op == "update":
                    self._apply_update(conn, collection, doc_id, data, now, stamp)
                elif op == "delete":
                    self._apply_delete(conn, collection, doc_id)
                else:
                    raise ValueError(f"Unknown write operation: {op}")

    def _apply_create(self, conn, collection, doc_id, data, now, stamp):
        try:
            self._insert_document(conn, collection, doc_id, data, now, stamp)
        except IntegrityError as e:
            raise DocumentAlreadyExists(collection, doc_id) from e

    def _apply_set(self, conn, collection, doc_id, data, now, stamp):
        self._apply_delete(conn, collection, doc_id)
        self._insert_document(conn, collection, doc_id, data, now, stamp)

    def _apply_update(self, conn, collection, doc_id, fields, now, stamp):
        # The first statement is a write so the row is locked before it is read.
        result = conn.execute(
            update(documents)
            .where(self._doc_filter(documents, collection, doc_id))
            .values(updated_at=now)
        )
        if result.rowcount == 0:
            raise DocumentNotFound(collection, doc_id)

        data = dict(conn.execute(
            select(documents.c.data).where(self._doc_filter(documents, collection, doc_id))
        ).scalar_one())

        for name, value in fields.items():
            if isinstance(value, ArrayAppend):
                if not isinstance(data.get(name), list):
                    data[name] = []
                self._insert_items(conn, collection, doc_id, name, value.values, stamp)
            elif isinstance(value, (list, tuple)):
                conn.execute(
                    delete(document_items).where(and_(
                        self._doc_filter(document_items, collection, doc_id),
                        document_items.c.field == name,
                    ))
                )
                data[name] = []
                self._insert_items(conn, collection, doc_id, name, value, stamp)
            else:
                data[name] = resolve_sentinels(value, stamp)

        conn.execute(
            update(documents)
            .where(self._doc_filter(documents, collection, doc_id))
            .values(data=data)
        )

    def _apply_delete(self, conn, collection, doc_id):
        conn.execute(delete(document_items).where(self._doc_filter(document_items, collection, doc_id)))
        conn.execute(delete(documents).where(self._doc_filter(documents, collection, doc_id)))

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _doc_filter(table, collection, doc_id):
        return and_(table.c.collection == collection, table.c.doc_id == doc_id)

    def _insert_document(self, conn, collection, doc_id, data, now, stamp):
        scalars = {}
        arrays = {}
        for name, value in data.items():
            if isinstance(value, ArrayAppend):
                raise ValueError("ArrayAppend is only valid in update()")
            if isinstance(value, (list, tuple)):
                scalars[name] = []
                arrays[name] = value
            else:
                scalars[name] = resolve_sentinels(value, stamp)

        conn.execute(insert(documents).values(
            collection=collection,
            doc_id=doc_id,
            data=scalars,
            created_at=now,
            updated_at=now,
        ))
        for name, values in arrays.items():
            self._insert_items(conn, collection, doc_id, name, values, stamp)

    @staticmethod
    def _insert_items(conn, collection, doc_id, name, values, stamp):
        if not values:
            return
        conn.execute(insert(document_items), [
            {
                "collection": collection,
                "doc_id": doc_id,
                "field": name,
                "value": resolve_sentinels(v, stamp),
            }
            for v in values
        ])
