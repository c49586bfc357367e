"""Document store abstraction and the bundled in-memory implementation."""

from polychat.store.base import (
    SERVER_TIMESTAMP,
    Document,
    DocumentChange,
    DocumentStore,
    Filter,
    Query,
    Snapshot,
    Subscription,
)
from polychat.store.memory import InMemoryDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentChange",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "Query",
    "Snapshot",
    "Subscription",
]
