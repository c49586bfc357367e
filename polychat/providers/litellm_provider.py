"""Tutor completions through LiteLLM."""

import os
from typing import Any

import litellm
from litellm import acompletion

from polychat.providers.base import LLMProvider, LLMResponse
from polychat.providers.registry import ProviderSpec, find_by_model, find_gateway


class LiteLLMProvider(LLMProvider):
    """
    Chat completions for the tutor actions via LiteLLM.

    The provider is picked from the registry: an explicit gateway or local
    server first, otherwise whatever the model name points at.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "gemini/gemini-2.5-flash",
        extra_headers: dict[str, str] | None = None,
        provider_name: str | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self._gateway = find_gateway(provider_name, api_key, api_base)

        spec = self._spec_for(default_model)
        if api_key and spec and spec.env_key:
            # A gateway owns the key outright; hosted providers keep a key the user already exported.
            if self._gateway:
                os.environ[spec.env_key] = api_key
            else:
                os.environ.setdefault(spec.env_key, api_key)

        litellm.suppress_debug_info = True
        litellm.drop_params = True

    def _spec_for(self, model: str) -> ProviderSpec | None:
        return self._gateway or find_by_model(model)

    def _resolve_model(self, model: str) -> str:
        """Model name with the provider prefix LiteLLM routes on."""
        spec = self._spec_for(model)
        return spec.prefixed(model) if spec else model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> LLMResponse:
        """One completion. Failures come back as ``finish_reason="error"`` instead of raising."""
        request: dict[str, Any] = {
            "model": self._resolve_model(model or self.default_model),
            "messages": messages,
            "max_tokens": max(1, max_tokens),
            "temperature": temperature,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        for key, value in (("api_key", self.api_key), ("api_base", self.api_base), ("extra_headers", self.extra_headers)):
            if value:
                request[key] = value

        try:
            response = await acompletion(**request)
        except Exception as e:
            return LLMResponse(content=f"Error calling LLM: {e}", finish_reason="error")
        return _to_llm_response(response)

    def get_default_model(self) -> str:
        return self.default_model


def _to_llm_response(response: Any) -> LLMResponse:
    choice = response.choices[0]
    usage = getattr(response, "usage", None)
    return LLMResponse(
        content=choice.message.content,
        finish_reason=choice.finish_reason or "stop",
        usage={
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        } if usage else {},
    )
