"""LLM provider abstraction module."""

from polychat.providers.base import LLMProvider, LLMResponse
from polychat.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
