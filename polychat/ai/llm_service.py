"""AI text service that prompts a chat model directly."""

from loguru import logger

from polychat.ai.base import MALFORMED_GRAMMAR_NOTE, NO_DEFINITION, AIService, GrammarResult, Reply
from polychat.ai.json_utils import parse_json_response
from polychat.ai.monitoring import monitored
from polychat.errors import MalformedOutputError, ServiceError
from polychat.providers.base import LLMProvider

TRANSLATE_PROMPT = 'Translate to {target_lang}. Output ONLY the translated text: "{text}"'

EXPLAIN_PROMPT = 'Define "{text}" in English. Format: [Part of Speech] Definition. Max 20 words. No asterisks.'

GRAMMAR_PROMPT = (
    'Analyze the following text in {lang}. If there is an error, return ONLY JSON: '
    '{{ "hasError": true, "correction": "corrected text", "reason": "brief explanation" }}. '
    'If the grammar is correct, return ONLY JSON: {{ "hasError": false }}. Text: "{text}"'
)

REPLY_PROMPT = (
    "RETURN ONLY JSON. Respond in English, then translate to {lang}. Use context: {context}. "
    'Chat as Poly, a friendly tutor, with {user_name}. User said: "{user_text}". '
    'JSON format: {{ "english": "...", "target": "..." }}'
)


class LLMTextService(AIService):
    """
    Runs translate / explain / checkGrammar / generateAIResponse against an LLM provider.

    Used in-process by ``ai.mode = "direct"`` and behind the HTTP proxy.
    """

    def __init__(self, provider: LLMProvider, model: str | None = None):
        self.provider = provider
        self.model = model or provider.get_default_model()

    async def _complete(self, action: str, prompt: str, json_mode: bool = False) -> str:
        response = await self.provider.chat(
            messages=LLMProvider.user_prompt(prompt),
            model=self.model,
            json_mode=json_mode,
        )
        if response.is_error:
            raise ServiceError(response.content or "LLM call failed", action=action)
        return (response.content or "").strip()

    @monitored("translate")
    async def translate(self, text: str, target_lang: str) -> str:
        translated = await self._complete("translate", TRANSLATE_PROMPT.format(target_lang=target_lang, text=text))
        return translated or text

    @monitored("explain")
    async def explain(self, text: str) -> str:
        definition = await self._complete("explain", EXPLAIN_PROMPT.format(text=text))
        return definition or NO_DEFINITION

    @monitored("checkGrammar")
    async def check_grammar(self, text: str, lang: str) -> GrammarResult:
        raw = await self._complete("checkGrammar", GRAMMAR_PROMPT.format(lang=lang, text=text), json_mode=True)
        try:
            payload = parse_json_response(raw)
        except ValueError:
            logger.warning("Grammar check returned malformed JSON, assuming correct")
            return GrammarResult(has_error=False, note=MALFORMED_GRAMMAR_NOTE)
        return GrammarResult.from_payload(payload)

    @monitored("generateAIResponse")
    async def generate_reply(self, user_text: str, user_name: str, lang: str, context: str) -> Reply:
        prompt = REPLY_PROMPT.format(lang=lang, context=context, user_name=user_name, user_text=user_text)
        raw = await self._complete("generateAIResponse", prompt, json_mode=True)
        try:
            payload = parse_json_response(raw)
        except ValueError as e:
            raise MalformedOutputError("AI failed to generate valid JSON.", action="generateAIResponse") from e
        return Reply.from_payload(payload)
