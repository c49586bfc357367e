"""AI text service: translation, definitions, grammar checks and tutor replies."""

from polychat.ai.base import AIService, GrammarResult, Reply
from polychat.ai.llm_service import LLMTextService
from polychat.ai.proxy_client import ProxyAIService

__all__ = ["AIService", "GrammarResult", "Reply", "LLMTextService", "ProxyAIService"]
