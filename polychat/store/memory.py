"""In-process document store with real-time push subscriptions."""

from __future__ import annotations

import asyncio
import copy
import uuid
from typing import Any

from loguru import logger

from polychat.store.base import (
    SERVER_TIMESTAMP,
    Document,
    DocumentCallback,
    DocumentChange,
    DocumentStore,
    Query,
    Snapshot,
    SnapshotCallback,
    Subscription,
)
from polychat.utils.helpers import now_ms


def _run_query(docs: dict[str, dict[str, Any]], query: Query) -> list[Document]:
    """Apply filters, ordering and limit. Ties on the order field break by id."""
    rows = [
        (doc_id, data) for doc_id, data in docs.items()
        if all(f.matches(data) for f in query.filters)
    ]
    if query.order_by:
        field_name = query.order_by
        rows = [r for r in rows if field_name in r[1]]
        rows.sort(key=lambda r: (r[1][field_name], r[0]), reverse=query.descending)
    else:
        rows.sort(key=lambda r: r[0])
    if query.limit is not None:
        rows = rows[:query.limit]
    return [Document(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]


class _Listener(Subscription):
    """Per-subscription FIFO so callbacks run in write order without blocking writers."""

    def __init__(self, store: InMemoryDocumentStore, key: tuple[str, str | None], callback: Any):
        self._store = store
        self.key = key
        self._callback = callback
        self.queue: asyncio.Queue = asyncio.Queue()
        self.pending = 0
        self.active = True
        self._worker = asyncio.get_running_loop().create_task(self._run())

    def push(self, payload: Any) -> None:
        if self.active:
            self.pending += 1
            self.queue.put_nowait(payload)

    async def _run(self) -> None:
        while True:
            payload = await self.queue.get()
            try:
                await self._callback(payload)
            except Exception as e:
                logger.exception("Subscription callback on {} failed: {}", self.key[0], e)
            finally:
                self.pending -= 1

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._detach(self)
        self._worker.cancel()


class _QueryListener(_Listener):
    def __init__(self, store, collection: str, query: Query, callback: SnapshotCallback):
        super().__init__(store, (collection, None), callback)
        self.query = query
        self.last: list[Document] = []

    def refresh(self, docs: dict[str, dict[str, Any]], initial: bool = False) -> None:
        current = _run_query(docs, self.query)
        previous = {d.id: d for d in self.last}
        now_ids = {d.id for d in current}

        changes = [DocumentChange("removed", d) for d in self.last if d.id not in now_ids]
        for doc in current:
            before = previous.get(doc.id)
            if before is None:
                changes.append(DocumentChange("added", doc))
            elif before.data != doc.data:
                changes.append(DocumentChange("modified", doc))

        self.last = current
        if changes or initial:
            self.push(Snapshot(documents=list(current), changes=changes))


class _DocumentListener(_Listener):
    def __init__(self, store, collection: str, doc_id: str, callback: DocumentCallback):
        super().__init__(store, (collection, doc_id), callback)
        self.doc_id = doc_id
        self.last: Document | None = None

    def refresh(self, docs: dict[str, dict[str, Any]], initial: bool = False) -> None:
        data = docs.get(self.doc_id)
        current = Document(self.doc_id, copy.deepcopy(data)) if data is not None else None
        if initial or current != self.last:
            self.last = current
            self.push(current)


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed store used by tests and the local CLI session.

    Every write bumps a strictly increasing millisecond clock used for
    ``SERVER_TIMESTAMP`` and re-evaluates the subscriptions on the touched
    collection. Subscriptions must be created from inside a running event loop.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._listeners: dict[str, list[_Listener]] = {}
        self._last_ts = 0

    # ---- writes ------------------------------------------------------------

    def _server_time(self) -> int:
        self._last_ts = max(now_ms(), self._last_ts + 1)
        return self._last_ts

    def _resolve(self, value: Any, ts: int) -> Any:
        if value is SERVER_TIMESTAMP:
            return ts
        if isinstance(value, dict):
            return {k: self._resolve(v, ts) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v, ts) for v in value]
        return copy.deepcopy(value)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        data = self._collections.get(collection, {}).get(doc_id)
        return Document(doc_id, copy.deepcopy(data)) if data is not None else None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._collections.setdefault(collection, {})[doc_id] = self._resolve(data, self._server_time())
        self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        docs = self._collections.setdefault(collection, {})
        resolved = self._resolve(data, self._server_time())
        if merge and doc_id in docs:
            docs[doc_id] = {**docs[doc_id], **resolved}
        else:
            docs[doc_id] = resolved
        self._notify(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        if self._collections.get(collection, {}).pop(doc_id, None) is not None:
            self._notify(collection)

    # ---- reads -------------------------------------------------------------

    async def query(self, collection: str, query: Query | None = None) -> list[Document]:
        return _run_query(self._collections.get(collection, {}), query or Query())

    def subscribe(self, collection: str, query: Query | None, callback: SnapshotCallback) -> Subscription:
        listener = _QueryListener(self, collection, query or Query(), callback)
        self._listeners.setdefault(collection, []).append(listener)
        listener.refresh(self._collections.get(collection, {}), initial=True)
        return listener

    def subscribe_document(self, collection: str, doc_id: str, callback: DocumentCallback) -> Subscription:
        listener = _DocumentListener(self, collection, doc_id, callback)
        self._listeners.setdefault(collection, []).append(listener)
        listener.refresh(self._collections.get(collection, {}), initial=True)
        return listener

    # ---- subscription plumbing ---------------------------------------------

    def _notify(self, collection: str) -> None:
        docs = self._collections.get(collection, {})
        for listener in list(self._listeners.get(collection, [])):
            listener.refresh(docs)

    def _detach(self, listener: _Listener) -> None:
        listeners = self._listeners.get(listener.key[0], [])
        if listener in listeners:
            listeners.remove(listener)

    async def wait_idle(self) -> None:
        """Wait until every queued snapshot has been handed to its callback."""
        while any(l.pending for ls in self._listeners.values() for l in ls):
            await asyncio.sleep(0)
