"""Vocabulary notebook and word lookup."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from polychat.ai.base import AIService
from polychat.chat.models import VocabEntry
from polychat.chat.paths import StorePaths
from polychat.errors import ValidationError
from polychat.store import SERVER_TIMESTAMP, DocumentStore, Query

LOOKUP_FAILED = "Could not load definition."
LOOKUP_ERROR = "Definition service failed."


@dataclass
class Lookup:
    text: str
    definition: str
    error: str | None = None


class Notebook:
    """A user's saved words, plus the dictionary lookup that feeds it."""

    def __init__(self, store: DocumentStore, ai: AIService, paths: StorePaths, user_id: str, timeout_s: float = 30.0):
        self.store = store
        self.ai = ai
        self.paths = paths
        self.user_id = user_id
        self.timeout_s = timeout_s

    @property
    def collection(self) -> str:
        return self.paths.vocab(self.user_id)

    async def lookup(self, text: str) -> Lookup:
        """Define a word or phrase. Service failures yield a placeholder definition."""
        text = text.strip()
        if not text:
            return Lookup(text="", definition="")
        try:
            definition = await asyncio.wait_for(self.ai.explain(text), timeout=self.timeout_s)
        except Exception as e:
            logger.warning("Definition lookup for {!r} failed: {}", text, e)
            return Lookup(text=text, definition=LOOKUP_FAILED, error=LOOKUP_ERROR)
        return Lookup(text=text, definition=definition)

    async def save(self, word: str, definition: str, lang: str) -> VocabEntry:
        if not word.strip():
            raise ValidationError("Nothing to save.")
        entry = VocabEntry(word=word.strip(), definition=definition, lang=lang)
        entry.id = await self.store.add(self.collection, {**entry.to_dict(), "timestamp": SERVER_TIMESTAMP})
        return entry

    async def delete(self, entry_id: str) -> None:
        await self.store.delete(self.collection, entry_id)

    async def entries(self) -> list[VocabEntry]:
        """Saved words, newest first."""
        docs = await self.store.query(self.collection, Query().ordered("timestamp", descending=True))
        return [VocabEntry.from_dict(d.id, d.data) for d in docs]

    async def reset_ai_chat(self) -> int:
        """Delete the whole tutor conversation. Returns the number of messages removed."""
        collection = self.paths.ai_messages(self.user_id)
        docs = await self.store.query(collection)
        for doc in docs:
            await self.store.delete(collection, doc.id)
        logger.info("Reset AI chat for {} ({} messages)", self.user_id, len(docs))
        return len(docs)
