"""DM notification mailbox: producer write and consumer loop."""

from __future__ import annotations

import asyncio

from loguru import logger

from polychat.chat.channels import ChannelList
from polychat.chat.models import ChannelEntry, User, dm_id
from polychat.chat.paths import StorePaths
from polychat.store import SERVER_TIMESTAMP, DocumentStore, Snapshot, Subscription
from polychat.utils.helpers import now_ms

UNKNOWN_USER = "Unknown User"


async def send_notification(store: DocumentStore, paths: StorePaths, sender_id: str, recipient_id: str) -> None:
    """Drop a record in the recipient's mailbox so their client surfaces the DM.

    ``trigger`` changes on every call, which turns a repeat notification from
    the same sender into a ``modified`` change.
    """
    if sender_id == recipient_id:
        return
    await store.set(
        paths.notifications(recipient_id),
        sender_id,
        {"senderUid": sender_id, "timestamp": SERVER_TIMESTAMP, "trigger": now_ms()},
        merge=True,
    )


class MailboxConsumer:
    """
    Turns mailbox records into channel-list entries.

    Each change is handled in its own task: resolve the sender's name, upsert
    the DM channel as unread, then delete the record so the sender can
    notify again.
    """

    def __init__(self, store: DocumentStore, paths: StorePaths, user_id: str, channels: ChannelList):
        self.store = store
        self.paths = paths
        self.user_id = user_id
        self.channels = channels
        self._sub: Subscription | None = None
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        if self._sub is None:
            self._sub = self.store.subscribe(self.paths.notifications(self.user_id), None, self._on_snapshot)

    def stop(self) -> None:
        if self._sub:
            self._sub.unsubscribe()
            self._sub = None

    async def drain(self) -> None:
        """Wait for every in-flight record to finish processing."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _on_snapshot(self, snapshot: Snapshot) -> None:
        for change in snapshot.changes:
            if change.kind == "removed":
                continue
            task = asyncio.create_task(self._process(change.document.id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _resolve_name(self, sender_id: str) -> str:
        try:
            doc = await self.store.get(self.paths.users, sender_id)
        except Exception as e:
            logger.warning("Failed to fetch profile of {}: {}", sender_id, e)
            return UNKNOWN_USER
        if doc is None:
            return UNKNOWN_USER
        return User.from_dict(doc.id, doc.data).display_name or UNKNOWN_USER

    async def _process(self, sender_id: str) -> None:
        try:
            channel_id = dm_id(self.user_id, sender_id)
        except ValueError as e:
            logger.warning("Discarding mailbox record {}: {}", sender_id, e)
            await self._consume(sender_id)
            return

        name = await self._resolve_name(sender_id)
        self.channels.upsert(ChannelEntry(id=channel_id, name=name, is_dm=True, unread_candidate=True))
        logger.debug("DM {} from {} surfaced", channel_id, name)

        await self._consume(sender_id)

    async def _consume(self, sender_id: str) -> None:
        try:
            await self.store.delete(self.paths.notifications(self.user_id), sender_id)
        except Exception as e:
            logger.error("Error deleting notification from {}: {}", sender_id, e)
