"""AI text service backed by the polychat HTTP proxy."""

from typing import Any

import httpx
from loguru import logger

from polychat.ai.base import NO_DEFINITION, AIService, GrammarResult, Reply
from polychat.ai.monitoring import monitored
from polychat.errors import ServiceError


class ProxyAIService(AIService):
    """
    Posts ``{"action": ..., ...}`` bodies to a single proxy endpoint.

    Transport errors, timeouts, non-2xx statuses and non-JSON bodies all
    surface as ``ServiceError``.
    """

    def __init__(self, url: str, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def _call(self, action: str, **fields: Any) -> dict[str, Any]:
        try:
            response = await self._client.post(self.url, json={"action": action, **fields})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ServiceError(f"HTTP error! status: {e.response.status_code}", action=action) from e
        except httpx.HTTPError as e:
            raise ServiceError(f"{action} request failed: {e}", action=action) from e
        except ValueError as e:
            raise ServiceError(f"{action} returned a non-JSON body", action=action) from e

        if not isinstance(data, dict):
            raise ServiceError(f"{action} returned an unexpected body", action=action)
        return data

    @monitored("translate")
    async def translate(self, text: str, target_lang: str) -> str:
        data = await self._call("translate", text=text, targetLang=target_lang)
        if data.get("error"):
            raise ServiceError(str(data["error"]), action="translate")
        return data.get("translatedText") or text

    @monitored("explain")
    async def explain(self, text: str) -> str:
        data = await self._call("explain", text=text)
        return data.get("definition") or NO_DEFINITION

    @monitored("checkGrammar")
    async def check_grammar(self, text: str, lang: str) -> GrammarResult:
        data = await self._call("checkGrammar", text=text, lang=lang)
        if data.get("error"):
            logger.debug("Grammar check note from proxy: {}", data["error"])
        return GrammarResult.from_payload(data)

    @monitored("generateAIResponse")
    async def generate_reply(self, user_text: str, user_name: str, lang: str, context: str) -> Reply:
        data = await self._call(
            "generateAIResponse",
            userText=user_text,
            userName=user_name,
            lang=lang,
            context=context,
        )
        payload = data.get("response")
        if not isinstance(payload, dict):
            raise ServiceError("Proxy response had no reply", action="generateAIResponse")
        return Reply.from_payload(payload)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
