"""Channel list reconciliation.

The list is only ever changed by applying a pure function to the current
value and storing the result, with no await in between, so concurrent
mailbox tasks cannot interleave a read and a write.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from polychat.chat.models import (
    DEFAULT_CHANNEL,
    USER_SEARCH,
    VIRTUAL_CHANNELS,
    VIRTUAL_NAMES,
    Channel,
    ChannelEntry,
)


def upsert_channel(channels: list[Channel], entry: ChannelEntry, active_channel_id: str | None) -> list[Channel]:
    """Move ``entry`` to the front, keeping an existing display name and suppressing unread on the open channel."""
    existing = next((c for c in channels if c.id == entry.id), None)
    new = Channel(
        id=entry.id,
        name=existing.name if existing else entry.name,
        is_dm=entry.is_dm,
        unread=entry.unread_candidate and entry.id != active_channel_id,
    )
    return [new] + [c for c in channels if c.id != entry.id]


def delete_channel(channels: list[Channel], channel_id: str) -> list[Channel]:
    return [c for c in channels if c.id != channel_id]


def normalize_channels(raw: Any) -> list[Channel] | None:
    """Coerce persisted data into a duplicate-free list; None when it is not a list."""
    if not isinstance(raw, list):
        return None
    result: list[Channel] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        channel = Channel.from_dict(item)
        if channel.id in seen:
            continue
        seen.add(channel.id)
        result.append(channel)
    return result


class ChannelCache:
    """JSON file holding one user's channel list between sessions."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> list[Channel]:
        if not self.path.exists():
            return [DEFAULT_CHANNEL]
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Discarding unreadable channel cache {}: {}", self.path, e)
            return [DEFAULT_CHANNEL]
        channels = normalize_channels(raw)
        if channels is None:
            logger.warning("Discarding malformed channel cache {}", self.path)
            return [DEFAULT_CHANNEL]
        return channels

    def save(self, channels: list[Channel]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps([c.to_dict() for c in channels], ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("Failed to write channel cache {}: {}", self.path, e)


class ChannelList:
    """Single owner of the channel list and the active channel id."""

    def __init__(
        self,
        channels: list[Channel] | None = None,
        cache: ChannelCache | None = None,
        active_channel_id: str = USER_SEARCH,
        on_change: Callable[[list[Channel]], None] | None = None,
    ):
        self.cache = cache
        if channels is None:
            channels = cache.load() if cache else [DEFAULT_CHANNEL]
        self._channels: list[Channel] = list(channels)
        self.active_channel_id = active_channel_id
        self.on_change = on_change

    @property
    def channels(self) -> list[Channel]:
        return list(self._channels)

    @property
    def dms(self) -> list[Channel]:
        return [c for c in self._channels if c.is_dm]

    def find(self, channel_id: str) -> Channel | None:
        return next((c for c in self._channels if c.id == channel_id), None)

    def name_of(self, channel_id: str) -> str:
        if channel_id in VIRTUAL_NAMES:
            return VIRTUAL_NAMES[channel_id]
        channel = self.find(channel_id)
        return channel.name if channel else ""

    def _commit(self, channels: list[Channel]) -> None:
        self._channels = channels
        if self.cache:
            self.cache.save(channels)
        if self.on_change:
            self.on_change(self.channels)

    def upsert(self, entry: ChannelEntry) -> Channel:
        self._commit(upsert_channel(self._channels, entry, self.active_channel_id))
        return self._channels[0]

    def delete(self, channel_id: str) -> None:
        self._commit(delete_channel(self._channels, channel_id))
        if self.active_channel_id == channel_id:
            self.active_channel_id = USER_SEARCH

    def open(self, channel_id: str, name: str | None = None) -> None:
        """Make a channel active. DM channels are (re)inserted at the front and marked read."""
        if channel_id in VIRTUAL_CHANNELS:
            self.active_channel_id = channel_id
            return
        self.active_channel_id = channel_id
        existing = self.find(channel_id)
        self.upsert(ChannelEntry(
            id=channel_id,
            name=name or (existing.name if existing else channel_id),
            is_dm=True,
            unread_candidate=False,
        ))
