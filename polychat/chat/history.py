"""Sliding window over the newest messages of a channel."""

from __future__ import annotations

from typing import Awaitable, Callable

from polychat.chat.models import Message
from polychat.store import DocumentStore, Query, Snapshot, Subscription

PAGE_SIZE = 20


class HistoryWindow:
    """
    Live view of the latest ``window_size`` messages, oldest first.

    ``load_more`` widens the window by one page and re-subscribes; the new
    snapshot is always a superset of the previous one.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        page_size: int = PAGE_SIZE,
        on_change: Callable[[list[Message]], Awaitable[None]] | None = None,
    ):
        self.store = store
        self.collection = collection
        self.page_size = page_size
        self.window_size = page_size
        self.on_change = on_change
        self.messages: list[Message] = []
        self.loading_more = False
        self._sub: Subscription | None = None

    @property
    def auto_scroll(self) -> bool:
        """Only follow new messages while the user has not paged back."""
        return self.window_size == self.page_size

    @property
    def has_more(self) -> bool:
        return len(self.messages) >= self.window_size

    def _query(self) -> Query:
        return Query().ordered("timestamp", descending=True).limited(self.window_size)

    def open(self) -> None:
        if self._sub is None:
            self._sub = self.store.subscribe(self.collection, self._query(), self._on_snapshot)

    def load_more(self) -> None:
        self.loading_more = True
        self.window_size += self.page_size
        self.close()
        self.open()

    def close(self) -> None:
        if self._sub:
            self._sub.unsubscribe()
            self._sub = None

    async def _on_snapshot(self, snapshot: Snapshot) -> None:
        self.messages = [Message.from_dict(d.id, d.data) for d in reversed(snapshot.documents)]
        self.loading_more = False
        if self.on_change:
            await self.on_change(self.messages)
