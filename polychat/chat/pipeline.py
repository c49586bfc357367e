"""Outgoing message pipeline: grammar check, translation, persistence, notify, tutor reply."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Literal

from loguru import logger

from polychat.ai.base import DEFAULT_CORRECTION_REASON, AIService
from polychat.chat.languages import GRAMMAR_FOCUS, TOPICS
from polychat.chat.mailbox import send_notification
from polychat.chat.models import (
    AI_CHANNEL,
    BOT_DISPLAY_NAME,
    BOT_USER_ID,
    NOTEBOOK,
    USER_SEARCH,
    Correction,
    Message,
    partner_of,
)
from polychat.chat.paths import StorePaths
from polychat.errors import PersistenceError, ServiceError, ValidationError
from polychat.store import SERVER_TIMESTAMP, DocumentStore

BOT_UNAVAILABLE = "Poly is temporarily unavailable."
REPLY_FAILED = "AI failed to generate response."

SendMode = Literal["english", "target"]


@dataclass
class AIContext:
    """Tutor conversation settings for the ``ai`` channel."""
    topic: str = TOPICS[0]
    grammar_focus: str = GRAMMAR_FOCUS[0]

    def prompt(self) -> str:
        return f"Topic: {self.topic}. Grammar Focus: {self.grammar_focus}."


@dataclass
class SendRequest:
    raw_input: str
    mode: SendMode
    channel_id: str
    target_lang: str
    target_lang_code: str = ""
    ai_context: AIContext | None = None


@dataclass
class SendOutcome:
    """Messages written by one send, plus a banner when the tutor reply failed."""
    messages: list[Message] = field(default_factory=list)
    error: str | None = None

    @property
    def user_message(self) -> Message | None:
        return self.messages[0] if self.messages else None

    @property
    def reply(self) -> Message | None:
        return self.messages[1] if len(self.messages) > 1 else None


class MessagePipeline:
    """
    Runs one outgoing message through its stages, strictly in order.

    Grammar check and translation fail closed (nothing is written); the
    partner notification and the tutor reply never undo the user's message.
    """

    def __init__(
        self,
        store: DocumentStore,
        ai: AIService,
        paths: StorePaths,
        user_id: str,
        display_name: str,
        timeout_s: float = 30.0,
    ):
        self.store = store
        self.ai = ai
        self.paths = paths
        self.user_id = user_id
        self.display_name = display_name
        self.timeout_s = timeout_s

    async def _call_ai(self, action: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise ServiceError(f"{action} timed out after {self.timeout_s}s", action=action) from e
        except ServiceError:
            raise
        except Exception as e:
            raise ServiceError(f"{action} failed: {e}", action=action) from e

    async def send(self, request: SendRequest) -> SendOutcome:
        raw = request.raw_input
        if not raw or not raw.strip():
            raise ValidationError("Message is empty.")
        if request.channel_id in (USER_SEARCH, NOTEBOOK):
            raise ValidationError(f"Cannot send messages to {request.channel_id}.")

        is_ai = request.channel_id == AI_CHANNEL
        is_practice = request.mode == "target"

        correction: Correction | None = None
        if is_practice or (is_ai and request.target_lang != "English"):
            check = await self._call_ai("checkGrammar", self.ai.check_grammar(raw, request.target_lang))
            if check.has_error:
                correction = Correction(check.correction or raw, check.reason or DEFAULT_CORRECTION_REASON)

        text = raw
        if request.mode == "english" and request.target_lang != "English":
            text = await self._call_ai("translate", self.ai.translate(raw, request.target_lang))

        collection = self.paths.messages_for(request.channel_id, self.user_id)
        user_msg = Message(
            text=text,
            original_text=raw,
            user_id=self.user_id,
            display_name=self.display_name,
            lang=request.target_lang,
            lang_code=request.target_lang_code,
            is_practice=is_practice,
            correction=correction,
        )
        try:
            msg_id = await self.store.add(collection, {**user_msg.to_dict(), "timestamp": SERVER_TIMESTAMP})
        except Exception as e:
            raise PersistenceError(f"Failed to send message to database: {e}") from e

        outcome = SendOutcome(messages=[await self._stored(collection, msg_id, user_msg)])

        partner = partner_of(request.channel_id, self.user_id)
        if partner:
            try:
                await send_notification(self.store, self.paths, self.user_id, partner)
            except Exception as e:
                logger.error("Failed to create DM notification for {}: {}", partner, e)

        if is_ai:
            await self._reply(request, collection, raw, outcome)
        return outcome

    async def _stored(self, collection: str, msg_id: str, msg: Message) -> Message:
        """Read back a written message so the caller sees the store-assigned timestamp."""
        try:
            doc = await self.store.get(collection, msg_id)
        except Exception as e:
            logger.warning("Could not read back message {}: {}", msg_id, e)
            doc = None
        if doc is None:
            return replace(msg, id=msg_id)
        return Message.from_dict(doc.id, doc.data)

    async def _reply(self, request: SendRequest, collection: str, raw: str, outcome: SendOutcome) -> None:
        context = (request.ai_context or AIContext()).prompt()
        try:
            reply = await self._call_ai(
                "generateAIResponse",
                self.ai.generate_reply(raw, self.display_name, request.target_lang, context),
            )
            bot_msg = Message(
                text=reply.target,
                original_text=reply.english,
                user_id=BOT_USER_ID,
                display_name=BOT_DISPLAY_NAME,
                lang=request.target_lang,
                lang_code=request.target_lang_code,
                is_bot=True,
            )
        except ServiceError as e:
            logger.warning("Tutor reply failed: {}", e)
            outcome.error = REPLY_FAILED
            bot_msg = Message(
                text=BOT_UNAVAILABLE,
                original_text=BOT_UNAVAILABLE,
                user_id=BOT_USER_ID,
                display_name=BOT_DISPLAY_NAME,
                lang=request.target_lang,
                lang_code=request.target_lang_code,
                is_bot=True,
            )

        try:
            bot_id = await self.store.add(collection, {**bot_msg.to_dict(), "timestamp": SERVER_TIMESTAMP})
        except Exception as e:
            logger.error("Failed to store tutor reply: {}", e)
            outcome.error = outcome.error or "Failed to save Poly's reply."
            return
        outcome.messages.append(await self._stored(collection, bot_id, bot_msg))
