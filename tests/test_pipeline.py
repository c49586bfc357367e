import asyncio
from unittest.mock import AsyncMock

import pytest

from polychat.ai.base import GrammarResult, Reply
from polychat.chat.pipeline import AIContext, MessagePipeline, SendRequest
from polychat.errors import PersistenceError, ServiceError, ValidationError
from polychat.store import InMemoryDocumentStore


def _pipeline(store, fake_ai, paths, timeout_s=5.0):
    return MessagePipeline(store, fake_ai, paths, "u1", "Alice", timeout_s=timeout_s)


def _dm(raw="Hello", mode="english", lang="Spanish"):
    return SendRequest(raw_input=raw, mode=mode, channel_id="dm_u1_u2", target_lang=lang, target_lang_code="es-ES")


def _ai(raw="Hello", mode="english", lang="Spanish", context=None):
    return SendRequest(raw_input=raw, mode=mode, channel_id="ai", target_lang=lang,
                       target_lang_code="es-ES", ai_context=context)


class FlakyStore(InMemoryDocumentStore):
    """Fails writes whose collection path contains one of the given fragments."""

    def __init__(self, fail_set_on=(), fail_add_after=None):
        super().__init__()
        self.fail_set_on = fail_set_on
        self.fail_add_after = fail_add_after
        self.adds = 0

    async def set(self, collection, doc_id, data, merge=False):
        if any(fragment in collection for fragment in self.fail_set_on):
            raise ConnectionError("write rejected")
        await super().set(collection, doc_id, data, merge=merge)

    async def add(self, collection, data):
        if self.fail_add_after is not None and self.adds >= self.fail_add_after:
            raise ConnectionError("write rejected")
        self.adds += 1
        return await super().add(collection, data)


class TestDirectMessages:

    @pytest.mark.asyncio
    async def test_english_message_is_translated_persisted_and_notified(self, store, fake_ai, paths):
        outcome = await _pipeline(store, fake_ai, paths).send(_dm())

        docs = await store.query(paths.channel_messages("dm_u1_u2"))
        assert len(docs) == 1
        data = docs[0].data
        assert data["text"] == "[Spanish] Hello"
        assert data["originalText"] == "Hello"
        assert data["userId"] == "u1"
        assert data["displayName"] == "Alice"
        assert data["isPractice"] is False
        assert data["correction"] is None
        assert isinstance(data["timestamp"], int)
        fake_ai.check_grammar.assert_not_called()

        record = await store.get(paths.notifications("u2"), "u1")
        assert record.data["senderUid"] == "u1"
        assert outcome.user_message.id == docs[0].id
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_practice_mode_records_correction_without_translating(self, store, fake_ai, paths):
        fake_ai.check_grammar.return_value = GrammarResult(has_error=True, correction="Yo tengo un gato.", reason=None)

        outcome = await _pipeline(store, fake_ai, paths).send(_dm("Yo tiene un gato.", mode="target"))

        msg = outcome.user_message
        assert msg.text == "Yo tiene un gato."
        assert msg.original_text == "Yo tiene un gato."
        assert msg.is_practice is True
        assert msg.correction.correction == "Yo tengo un gato."
        assert msg.correction.reason == "Grammar check found a potential issue."
        fake_ai.translate.assert_not_called()
        fake_ai.check_grammar.assert_awaited_once_with("Yo tiene un gato.", "Spanish")

    @pytest.mark.asyncio
    async def test_correction_falls_back_to_raw_text(self, store, fake_ai, paths):
        fake_ai.check_grammar.return_value = GrammarResult(has_error=True, reason="Verb agreement.")

        outcome = await _pipeline(store, fake_ai, paths).send(_dm("Yo tiene", mode="target"))

        assert outcome.user_message.correction.correction == "Yo tiene"
        assert outcome.user_message.correction.reason == "Verb agreement."

    @pytest.mark.asyncio
    async def test_english_target_skips_translation(self, store, fake_ai, paths):
        outcome = await _pipeline(store, fake_ai, paths).send(_dm(lang="English"))

        assert outcome.user_message.text == "Hello"
        fake_ai.translate.assert_not_called()

    @pytest.mark.asyncio
    async def test_translate_failure_writes_nothing(self, store, fake_ai, paths):
        fake_ai.translate.side_effect = ServiceError("down", action="translate")

        with pytest.raises(ServiceError):
            await _pipeline(store, fake_ai, paths).send(_dm())

        assert await store.query(paths.channel_messages("dm_u1_u2")) == []
        assert await store.query(paths.notifications("u2")) == []

    @pytest.mark.asyncio
    async def test_grammar_failure_writes_nothing(self, store, fake_ai, paths):
        fake_ai.check_grammar.side_effect = RuntimeError("bad gateway")

        with pytest.raises(ServiceError) as excinfo:
            await _pipeline(store, fake_ai, paths).send(_dm(mode="target"))

        assert excinfo.value.action == "checkGrammar"
        assert await store.query(paths.channel_messages("dm_u1_u2")) == []

    @pytest.mark.asyncio
    async def test_slow_service_times_out(self, store, fake_ai, paths):
        async def slow(text, lang):
            await asyncio.sleep(1)
            return text

        fake_ai.translate.side_effect = slow

        with pytest.raises(ServiceError, match="timed out"):
            await _pipeline(store, fake_ai, paths, timeout_s=0.01).send(_dm())

        assert await store.query(paths.channel_messages("dm_u1_u2")) == []

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_message(self, fake_ai, paths):
        store = FlakyStore(fail_set_on=("dm_notifications",))

        outcome = await _pipeline(store, fake_ai, paths).send(_dm())

        assert len(outcome.messages) == 1
        assert outcome.error is None
        assert len(await store.query(paths.channel_messages("dm_u1_u2"))) == 1

    @pytest.mark.asyncio
    async def test_persist_failure_raises(self, fake_ai, paths):
        store = FlakyStore(fail_add_after=0)

        with pytest.raises(PersistenceError):
            await _pipeline(store, fake_ai, paths).send(_dm())

        assert await store.query(paths.notifications("u2")) == []


class TestValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "   ", "\n"])
    async def test_empty_input_is_rejected(self, store, fake_ai, paths, raw):
        with pytest.raises(ValidationError):
            await _pipeline(store, fake_ai, paths).send(_dm(raw))

        fake_ai.translate.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel", ["user-search", "notebook"])
    async def test_non_chat_channels_are_rejected(self, store, fake_ai, paths, channel):
        request = SendRequest(raw_input="hi", mode="english", channel_id=channel, target_lang="Spanish")

        with pytest.raises(ValidationError):
            await _pipeline(store, fake_ai, paths).send(request)


class TestTutorChannel:

    @pytest.mark.asyncio
    async def test_reply_is_persisted_after_user_message(self, store, fake_ai, paths):
        outcome = await _pipeline(store, fake_ai, paths).send(_ai())

        assert [m.is_bot for m in outcome.messages] == [False, True]
        reply = outcome.reply
        assert reply.text == "¡Encantado de conocerte!"
        assert reply.original_text == "Nice to meet you!"
        assert reply.user_id == "ai-companion-bot"
        assert reply.display_name == "Poly"
        assert reply.timestamp > outcome.user_message.timestamp

        docs = await store.query(paths.ai_messages("u1"))
        assert len(docs) == 2
        assert await store.query(paths.notifications("u1")) == []

    @pytest.mark.asyncio
    async def test_grammar_check_runs_before_translation(self, store, fake_ai, paths):
        calls = []
        fake_ai.check_grammar.side_effect = lambda text, lang: calls.append("grammar") or GrammarResult(False)
        fake_ai.translate.side_effect = lambda text, lang: calls.append("translate") or text

        await _pipeline(store, fake_ai, paths).send(_ai())

        assert calls == ["grammar", "translate"]

    @pytest.mark.asyncio
    async def test_reply_uses_context_and_raw_text(self, store, fake_ai, paths):
        context = AIContext(topic="Planning a trip", grammar_focus="Past Tense")

        await _pipeline(store, fake_ai, paths).send(_ai("I went home", context=context))

        fake_ai.generate_reply.assert_awaited_once_with(
            "I went home", "Alice", "Spanish", "Topic: Planning a trip. Grammar Focus: Past Tense."
        )

    @pytest.mark.asyncio
    async def test_reply_failure_posts_placeholder(self, store, fake_ai, paths):
        fake_ai.generate_reply.side_effect = ServiceError("HTTP error! status: 500")

        outcome = await _pipeline(store, fake_ai, paths).send(_ai())

        assert outcome.error == "AI failed to generate response."
        assert outcome.reply.text == "Poly is temporarily unavailable."
        assert outcome.reply.original_text == "Poly is temporarily unavailable."
        assert len(await store.query(paths.ai_messages("u1"))) == 2

    @pytest.mark.asyncio
    async def test_reply_write_failure_keeps_user_message(self, fake_ai, paths):
        store = FlakyStore(fail_add_after=1)

        outcome = await _pipeline(store, fake_ai, paths).send(_ai())

        assert len(outcome.messages) == 1
        assert outcome.error is not None
        assert len(await store.query(paths.ai_messages("u1"))) == 1

    @pytest.mark.asyncio
    async def test_english_tutor_chat_skips_grammar_and_translation(self, store, fake_ai, paths):
        fake_ai.generate_reply = AsyncMock(return_value=Reply(english="Hi!", target="Hi!"))

        outcome = await _pipeline(store, fake_ai, paths).send(_ai(lang="English"))

        fake_ai.check_grammar.assert_not_called()
        fake_ai.translate.assert_not_called()
        assert outcome.reply.text == "Hi!"
