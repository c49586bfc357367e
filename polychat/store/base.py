"""Base document store interface.

The chat core only needs four capabilities from its backing store:
point reads, ordered/bounded queries, real-time push subscriptions with
incremental changes, and atomic create / merge-upsert / delete writes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Literal


class _ServerTimestamp:
    """Sentinel replaced by the store's monotonic clock at write time."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

ChangeKind = Literal["added", "modified", "removed"]
FilterOp = Literal["==", "<", "<=", ">", ">="]


@dataclass(frozen=True)
class Document:
    """A stored document: its id plus a copy of its fields."""
    id: str
    data: dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class DocumentChange:
    """One incremental change delivered by a query subscription."""
    kind: ChangeKind
    document: Document


@dataclass
class Snapshot:
    """Query result at one point in time, plus the changes since the last one."""
    documents: list[Document] = field(default_factory=list)
    changes: list[DocumentChange] = field(default_factory=list)


@dataclass(frozen=True)
class Filter:
    """Equality or range condition on a single field."""
    field: str
    op: FilterOp
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        try:
            if self.op == "==":
                return actual == self.value
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            if self.op == ">=":
                return actual >= self.value
        except TypeError:
            return False
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Query:
    """Filter, order and bound a collection read."""
    filters: tuple[Filter, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def where(self, field_name: str, op: FilterOp, value: Any) -> "Query":
        return replace(self, filters=self.filters + (Filter(field_name, op, value),))

    def ordered(self, field_name: str, descending: bool = False) -> "Query":
        return replace(self, order_by=field_name, descending=descending)

    def limited(self, count: int) -> "Query":
        return replace(self, limit=count)


SnapshotCallback = Callable[[Snapshot], Awaitable[None]]
DocumentCallback = Callable[[Document | None], Awaitable[None]]


class Subscription(ABC):
    """Handle for a live subscription."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""
        pass


class DocumentStore(ABC):
    """
    Abstract push-based document store.

    Collections are addressed by slash-separated paths. Implementations must
    replace ``SERVER_TIMESTAMP`` values with a strictly increasing epoch-ms
    timestamp and deliver subscription snapshots for a given query in the
    order writes were applied.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Point lookup. Returns None when the document does not exist."""
        pass

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""
        pass

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or overwrite a document; with ``merge`` update only the given fields."""
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def query(self, collection: str, query: Query | None = None) -> list[Document]:
        """Run a one-shot query."""
        pass

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        query: Query | None,
        callback: SnapshotCallback,
    ) -> Subscription:
        """
        Subscribe to a query.

        The first snapshot reports every matching document as ``added``;
        later snapshots carry only what changed.
        """
        pass

    @abstractmethod
    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
    ) -> Subscription:
        """Subscribe to a single document (``None`` while it does not exist)."""
        pass
