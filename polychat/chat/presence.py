"""Presence: online/offline derived from heartbeat timestamps."""

from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger

from polychat.chat.models import VIRTUAL_CHANNELS, User, parse_dm_id
from polychat.chat.paths import StorePaths
from polychat.store import SERVER_TIMESTAMP, Document, DocumentStore, Subscription
from polychat.utils.helpers import now_ms

PRESENCE_WINDOW_MS = 300_000
HEARTBEAT_INTERVAL_S = 60


def is_online(last_active_ms: int | None, now: int, window_ms: int = PRESENCE_WINDOW_MS) -> bool:
    """A user is online iff their last heartbeat is strictly inside the window."""
    if last_active_ms is None:
        return False
    return now - last_active_ms < window_ms


def channel_is_online(
    channel_id: str,
    last_active_ms: int | None,
    now: int,
    window_ms: int = PRESENCE_WINDOW_MS,
) -> bool:
    """Presence indicator for a channel header. Only DM partners can be offline."""
    if channel_id in VIRTUAL_CHANNELS or parse_dm_id(channel_id) is None:
        return True
    return is_online(last_active_ms, now, window_ms)


class PresenceTracker:
    """Follows one partner's profile document and answers "online?" against the clock."""

    def __init__(
        self,
        store: DocumentStore,
        paths: StorePaths,
        partner_id: str,
        window_ms: int = PRESENCE_WINDOW_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.paths = paths
        self.partner_id = partner_id
        self.window_ms = window_ms
        self._clock = clock
        self.partner: User | None = None
        self._sub: Subscription | None = None

    def start(self) -> None:
        if self._sub is None:
            self._sub = self.store.subscribe_document(self.paths.users, self.partner_id, self._on_document)

    def stop(self) -> None:
        if self._sub:
            self._sub.unsubscribe()
            self._sub = None

    async def _on_document(self, doc: Document | None) -> None:
        self.partner = User.from_dict(doc.id, doc.data) if doc else None

    @property
    def last_active(self) -> int | None:
        return self.partner.last_active if self.partner else None

    @property
    def online(self) -> bool:
        return is_online(self.last_active, self._clock(), self.window_ms)


class HeartbeatService:
    """
    Periodically stamps ``lastActive`` on the owner's profile.

    Writes are merges, so a missing profile is created with just the stamp.
    Failures are logged and the loop keeps going.
    """

    def __init__(
        self,
        store: DocumentStore,
        paths: StorePaths,
        user_id: str,
        interval_s: float = HEARTBEAT_INTERVAL_S,
    ):
        self.store = store
        self.paths = paths
        self.user_id = user_id
        self.interval_s = interval_s
        self._running = False
        self._task: asyncio.Task | None = None

    async def beat(self) -> None:
        try:
            await self.store.set(self.paths.users, self.user_id, {"lastActive": SERVER_TIMESTAMP}, merge=True)
        except Exception as e:
            logger.warning("Heartbeat for {} failed: {}", self.user_id, e)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())

    async def _run_loop(self) -> None:
        while self._running:
            await self.beat()
            await asyncio.sleep(self.interval_s)

    def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
