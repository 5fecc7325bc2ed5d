"""
Remote document store backed by a SQL database.

Documents live in a single ``documents`` table keyed by (collection, doc_id)
with their fields in a JSON column. Live queries are served by polling: a
subscription re-runs its query every ``poll_interval`` seconds and calls back
only when the result set changed. The first snapshot is always delivered,
even when empty. Equality filters on string values and ordering by
``createdAt`` run in SQL; the ``created_at`` column mirrors that field.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from driver_portal.exceptions import RemoteStoreError
from driver_portal.models.document import Document
from driver_portal.utils.datetime_utils import to_instant, utc_now

logger = logging.getLogger(__name__)

USERS = "users"
RETURN_FORMS = "returnForms"
PUNCH_RECORDS = "punchRecords"


@dataclass(frozen=True)
class DocumentQuery:
    """Equality filters on one collection, ordered by a timestamp field"""
    collection: str
    filters: Tuple[Tuple[str, Any], ...] = ()
    order_by: str = "createdAt"
    descending: bool = True

    def where(self, field_name: str, value: Any) -> "DocumentQuery":
        return DocumentQuery(self.collection, self.filters + ((field_name, value),), self.order_by, self.descending)

    def matches(self, data: Dict[str, Any]) -> bool:
        return all(data.get(name) == value for name, value in self.filters)


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[DocumentSnapshot]], None]
ErrorCallback = Callable[[Exception], None]


class CommitGate:
    """
    Decides, once, whether a pending remote write may still commit.

    The writer calls ``claim`` right before committing; the caller that gave
    up waiting calls ``abandon``. Whichever comes first wins, so a write that
    was abandoned never lands and a write that was claimed is never retried
    elsewhere.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = "open"

    def claim(self) -> bool:
        with self._lock:
            if self._state == "abandoned":
                return False
            self._state = "committing"
            return True

    def abandon(self) -> bool:
        """True if the write is now guaranteed not to commit"""
        with self._lock:
            if self._state == "committing":
                return False
            self._state = "abandoned"
            return True


def sort_documents(documents: List[Dict[str, Any]], order_by: str = "createdAt", descending: bool = True) -> List[Dict[str, Any]]:
    """Order plain documents by a timestamp field; documents without one sort last"""
    dated = [d for d in documents if to_instant(d.get(order_by)) is not None]
    undated = [d for d in documents if to_instant(d.get(order_by)) is None]
    dated.sort(key=lambda d: to_instant(d.get(order_by)), reverse=descending)
    return dated + undated


class Subscription:
    """
    Handle for a live query; no callback fires after ``unsubscribe``.

    A snapshot callback that raises is logged and the subscription keeps
    polling; a failing query closes it and reports through ``on_error`` once.
    """

    def __init__(self, store: "RemoteStore", query: DocumentQuery, on_snapshot: SnapshotCallback,
                 on_error: Optional[ErrorCallback] = None, poll_interval: float = 2.0):
        self._store = store
        self._query = query
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._poll_interval = poll_interval
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()

    async def _run(self) -> None:
        last: Optional[List[DocumentSnapshot]] = None
        while not self._closed:
            try:
                snapshot = await self._store.query(self._query)
            except RemoteStoreError as e:
                if not self._closed:
                    self._closed = True
                    self._report_error(e)
                return

            if self._closed:
                return
            if snapshot != last:
                last = snapshot
                try:
                    self._on_snapshot(snapshot)
                except Exception:
                    logger.exception(f"Snapshot callback for {self._query.collection} failed")

            await asyncio.sleep(self._poll_interval)

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception(f"Error callback for {self._query.collection} failed")


class RemoteStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False,
                  gate: Optional[CommitGate] = None) -> Dict[str, Any]:
        """Write a document and return it as stored (after merging)"""
        raise NotImplementedError

    async def add(self, collection: str, data: Dict[str, Any], gate: Optional[CommitGate] = None) -> str:
        raise NotImplementedError

    async def query(self, query: DocumentQuery) -> List[DocumentSnapshot]:
        raise NotImplementedError

    def listen(self, query: DocumentQuery, on_snapshot: SnapshotCallback,
               on_error: Optional[ErrorCallback] = None) -> Subscription:
        raise NotImplementedError


class SQLDocumentStore:
    """
    Document store on top of a SQLAlchemy session factory.

    Writes accept a ``CommitGate``; the worker thread claims it right before
    ``commit`` and rolls back if the caller has already abandoned the write.
    """

    def __init__(self, session_factory: sessionmaker, poll_interval: float = 2.0):
        self._session_factory = session_factory
        self.poll_interval = poll_interval

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, collection, doc_id)

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False,
                  gate: Optional[CommitGate] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self._set, collection, doc_id, data, merge, gate)

    async def add(self, collection: str, data: Dict[str, Any], gate: Optional[CommitGate] = None) -> str:
        doc_id = uuid.uuid4().hex
        await asyncio.to_thread(self._set, collection, doc_id, data, False, gate)
        return doc_id

    async def query(self, query: DocumentQuery) -> List[DocumentSnapshot]:
        return await asyncio.to_thread(self._query, query)

    async def ping(self) -> bool:
        return await asyncio.to_thread(self._ping)

    def listen(self, query: DocumentQuery, on_snapshot: SnapshotCallback,
               on_error: Optional[ErrorCallback] = None) -> Subscription:
        return Subscription(self, query, on_snapshot, on_error, self.poll_interval)

    def _get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self._session_factory() as db:
                row = db.execute(
                    select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
                ).scalar_one_or_none()
                return dict(row.data) if row else None
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to read {collection}/{doc_id}: {e}")

    def _set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool,
             gate: Optional[CommitGate] = None) -> Dict[str, Any]:
        try:
            with self._session_factory() as db:
                row = db.execute(
                    select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
                ).scalar_one_or_none()

                if row is None:
                    row = Document(collection=collection, doc_id=doc_id, data={})
                    db.add(row)

                merged = dict(row.data or {}) if merge else {}
                merged.update(data)
                row.data = merged
                row.created_at = to_instant(merged.get("createdAt")) or row.created_at
                row.updated_at = utc_now()

                if gate is not None and not gate.claim():
                    db.rollback()
                    raise RemoteStoreError(f"Write to {collection}/{doc_id} abandoned before commit")
                db.commit()
                return dict(merged)
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to write {collection}/{doc_id}: {e}")

    def _query(self, query: DocumentQuery) -> List[DocumentSnapshot]:
        statement = select(Document).where(Document.collection == query.collection)
        for name, value in query.filters:
            if isinstance(value, str):
                statement = statement.where(Document.data[name].as_string() == value)

        sorted_in_sql = query.order_by == "createdAt"
        if sorted_in_sql:
            order = Document.created_at.desc() if query.descending else Document.created_at.asc()
            statement = statement.order_by(order.nulls_last(), Document.id)

        try:
            with self._session_factory() as db:
                rows = db.execute(statement).scalars().all()
                # Non-string filter values are only checked here
                documents = [dict(row.data or {}, id=row.doc_id) for row in rows if query.matches(row.data or {})]
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"Failed to query {query.collection}: {e}")

        if not sorted_in_sql:
            documents = sort_documents(documents, query.order_by, query.descending)
        return [DocumentSnapshot(id=d.pop("id"), data=d) for d in documents]

    def _ping(self) -> bool:
        try:
            with self._session_factory() as db:
                db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Remote store ping failed: {e}")
            return False
