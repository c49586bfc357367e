"""Chat data types and their store (camelCase) representation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

USER_SEARCH = "user-search"
AI_CHANNEL = "ai"
NOTEBOOK = "notebook"
VIRTUAL_CHANNELS = frozenset({USER_SEARCH, AI_CHANNEL, NOTEBOOK})

VIRTUAL_NAMES = {
    USER_SEARCH: "Find User",
    AI_CHANNEL: "Poly",
    NOTEBOOK: "My Notebook",
}

BOT_USER_ID = "ai-companion-bot"
BOT_DISPLAY_NAME = "Poly"

DM_PREFIX = "dm_"


def dm_id(a: str, b: str) -> str:
    """Canonical DM channel id for a pair of users; symmetric in its arguments."""
    for uid in (a, b):
        if not uid or "_" in uid:
            raise ValueError(f"Invalid user id for a DM channel: {uid!r}")
    return DM_PREFIX + "_".join(sorted([a, b]))


def is_dm(channel_id: str) -> bool:
    return channel_id.startswith(DM_PREFIX)


def parse_dm_id(channel_id: str) -> tuple[str, str] | None:
    """Return the two member ids of a DM channel, or None when the id is not DM-shaped."""
    if not is_dm(channel_id):
        return None
    parts = channel_id[len(DM_PREFIX):].split("_")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def partner_of(channel_id: str, user_id: str) -> str | None:
    """The other member of a DM channel. None for non-DM ids and for a self-DM."""
    members = parse_dm_id(channel_id)
    if members is None:
        return None
    others = [m for m in members if m != user_id]
    return others[0] if others else None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@dataclass
class User:
    """A registered user's public profile."""
    id: str
    display_name: str
    native_lang: str = "English"
    target_lang: str = "Spanish"
    photo_url: str = ""
    last_active: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "nativeLang": self.native_lang,
            "targetLang": self.target_lang,
            "photoUrl": self.photo_url,
            "lastActive": self.last_active,
            "userId": self.id,
        }

    @classmethod
    def from_dict(cls, doc_id: str, data: dict[str, Any]) -> User:
        last_active = data.get("lastActive")
        return cls(
            id=data.get("userId") or doc_id,
            display_name=data.get("displayName", ""),
            native_lang=data.get("nativeLang", "English"),
            target_lang=data.get("targetLang", "Spanish"),
            photo_url=data.get("photoUrl") or "",
            last_active=last_active if isinstance(last_active, int) else None,
        )


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Channel:
    """An entry in the user's local channel list."""
    id: str
    name: str
    is_dm: bool = False
    unread: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "isDm": self.is_dm, "unread": self.unread}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Channel:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            is_dm=bool(data.get("isDm", False)),
            unread=bool(data.get("unread", False)),
        )


DEFAULT_CHANNEL = Channel(id=USER_SEARCH, name=VIRTUAL_NAMES[USER_SEARCH])


@dataclass(frozen=True)
class ChannelEntry:
    """Upsert request handed to the reconciler."""
    id: str
    name: str
    is_dm: bool = True
    unread_candidate: bool = False


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Correction:
    correction: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"correction": self.correction, "reason": self.reason}


@dataclass(frozen=True)
class Message:
    """A persisted chat message. Never mutated after it is written."""
    text: str
    original_text: str
    user_id: str
    display_name: str
    lang: str
    lang_code: str = ""
    is_practice: bool = False
    correction: Correction | None = None
    is_bot: bool = False
    timestamp: int | None = None
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Store representation, without id or timestamp (both store-assigned)."""
        data: dict[str, Any] = {
            "text": self.text,
            "originalText": self.original_text,
            "userId": self.user_id,
            "displayName": self.display_name,
            "lang": self.lang,
            "langCode": self.lang_code,
        }
        if self.is_bot:
            data["isBot"] = True
        else:
            data["isPractice"] = self.is_practice
            data["correction"] = self.correction.to_dict() if self.correction else None
        return data

    @classmethod
    def from_dict(cls, doc_id: str, data: dict[str, Any]) -> Message:
        raw = data.get("correction")
        correction = None
        if isinstance(raw, dict) and raw.get("correction") is not None:
            correction = Correction(str(raw["correction"]), str(raw.get("reason") or ""))
        return cls(
            id=doc_id,
            text=data.get("text", ""),
            original_text=data.get("originalText", ""),
            user_id=data.get("userId", ""),
            display_name=data.get("displayName", ""),
            lang=data.get("lang", ""),
            lang_code=data.get("langCode", ""),
            is_practice=bool(data.get("isPractice", False)),
            correction=correction,
            is_bot=bool(data.get("isBot", False)),
            timestamp=data.get("timestamp"),
        )


# ---------------------------------------------------------------------------
# Notebook
# ---------------------------------------------------------------------------


@dataclass
class VocabEntry:
    word: str
    definition: str
    lang: str
    timestamp: int | None = None
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"word": self.word, "definition": self.definition, "lang": self.lang}

    @classmethod
    def from_dict(cls, doc_id: str, data: dict[str, Any]) -> VocabEntry:
        return cls(
            id=doc_id,
            word=data.get("word", ""),
            definition=data.get("definition", ""),
            lang=data.get("lang", ""),
            timestamp=data.get("timestamp"),
        )


@dataclass
class NotificationRecord:
    """Mailbox entry: ``sender_id`` wrote to the recipient's DM channel."""
    sender_id: str
    timestamp: int | None = None
    trigger: int | None = None

    @classmethod
    def from_dict(cls, doc_id: str, data: dict[str, Any]) -> NotificationRecord:
        return cls(
            sender_id=data.get("senderUid") or doc_id,
            timestamp=data.get("timestamp"),
            trigger=data.get("trigger"),
        )
