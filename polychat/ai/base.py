"""AI text service interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_CORRECTION_REASON = "Grammar check found a potential issue."
NO_DEFINITION = "No definition found."
MALFORMED_GRAMMAR_NOTE = "AI returned malformed JSON, assumed correct."
MISSING_ENGLISH = "Poly had trouble generating the response."
MISSING_TARGET = "Poly had trouble translating the response."

REPLY_FALLBACK_ENGLISH = "I'm sorry, I had a processing error. Can you try again?"
REPLY_FALLBACK_TARGET = "Lo siento, tuve un error de procesamiento. ¿Puedes intentar de nuevo?"


@dataclass
class GrammarResult:
    """Outcome of a grammar check."""
    has_error: bool
    correction: str | None = None
    reason: str | None = None
    note: str | None = None

    def to_payload(self) -> dict:
        payload: dict = {"hasError": self.has_error}
        if self.has_error:
            payload["correction"] = self.correction or ""
            payload["reason"] = self.reason or ""
        if self.note:
            payload["error"] = self.note
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "GrammarResult":
        """Build from a ``{hasError, correction, reason}`` body; anything but ``true`` is no error."""
        note = payload.get("error") if isinstance(payload.get("error"), str) else None
        if payload.get("hasError") is not True:
            return cls(has_error=False, note=note)
        correction = payload.get("correction")
        reason = payload.get("reason")
        return cls(
            has_error=True,
            correction=correction if isinstance(correction, str) and correction else None,
            reason=reason if isinstance(reason, str) and reason else None,
            note=note,
        )


@dataclass
class Reply:
    """Tutor reply: the English draft and its target-language rendering."""
    english: str
    target: str

    @classmethod
    def from_payload(cls, payload: dict) -> "Reply":
        """Build from ``{english, target}``, substituting a notice for a missing half."""
        english = payload.get("english")
        target = payload.get("target")
        return cls(
            english=english if isinstance(english, str) and english else MISSING_ENGLISH,
            target=target if isinstance(target, str) and target else MISSING_TARGET,
        )


class AIService(ABC):
    """
    The four stateless text operations the chat core depends on.

    Implementations raise ``polychat.errors.ServiceError`` when the backend
    is unreachable or its answer is unusable.
    """

    @abstractmethod
    async def translate(self, text: str, target_lang: str) -> str:
        """Translate text into the named language."""
        pass

    @abstractmethod
    async def explain(self, text: str) -> str:
        """Short English dictionary definition of a word or phrase."""
        pass

    @abstractmethod
    async def check_grammar(self, text: str, lang: str) -> GrammarResult:
        """Check text written in the named language."""
        pass

    @abstractmethod
    async def generate_reply(self, user_text: str, user_name: str, lang: str, context: str) -> Reply:
        """Produce the tutor's next turn."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None
