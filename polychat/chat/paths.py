"""Collection paths in the document store."""

import re
from dataclasses import dataclass

from polychat.chat.models import AI_CHANNEL

_UNSAFE = re.compile(r"[^a-z0-9_-]")


def sanitize_channel_id(channel_id: str) -> str:
    """Drop every character outside ``[a-z0-9_-]``."""
    return _UNSAFE.sub("", channel_id)


@dataclass(frozen=True)
class StorePaths:
    """Builds collection paths for one application namespace."""

    app_id: str = "poly-local-dev"

    @property
    def root(self) -> str:
        return f"artifacts/{self.app_id}"

    @property
    def users(self) -> str:
        return f"{self.root}/public/data/users"

    def channel_messages(self, channel_id: str) -> str:
        return f"{self.root}/public/data/chat_{sanitize_channel_id(channel_id)}"

    def ai_messages(self, user_id: str) -> str:
        return f"{self.root}/users/{user_id}/ai_messages"

    def notifications(self, user_id: str) -> str:
        return f"{self.root}/users/{user_id}/dm_notifications"

    def vocab(self, user_id: str) -> str:
        return f"{self.root}/users/{user_id}/vocab"

    def messages_for(self, channel_id: str, user_id: str) -> str:
        """Message collection behind a chat channel as seen by ``user_id``."""
        if channel_id == AI_CHANNEL:
            return self.ai_messages(user_id)
        return self.channel_messages(channel_id)
