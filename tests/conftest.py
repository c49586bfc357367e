from unittest.mock import AsyncMock, MagicMock

import pytest

from polychat.ai.base import AIService, GrammarResult, Reply
from polychat.chat.paths import StorePaths
from polychat.store import InMemoryDocumentStore


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def paths():
    return StorePaths("test-app")


@pytest.fixture
def fake_ai():
    """AI service double: translations are tagged, grammar is always fine."""
    ai = MagicMock(spec=AIService)
    ai.translate = AsyncMock(side_effect=lambda text, lang: f"[{lang}] {text}")
    ai.explain = AsyncMock(return_value="[noun] A small domesticated feline.")
    ai.check_grammar = AsyncMock(return_value=GrammarResult(has_error=False))
    ai.generate_reply = AsyncMock(return_value=Reply(english="Nice to meet you!", target="¡Encantado de conocerte!"))
    ai.close = AsyncMock()
    return ai
