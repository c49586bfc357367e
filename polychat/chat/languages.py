"""Supported languages and tutor presets."""

from typing import NamedTuple


class Language(NamedTuple):
    code: str
    name: str
    flag: str


LANGUAGES: tuple[Language, ...] = (
    Language("en-US", "English", "🇺🇸"),
    Language("es-ES", "Spanish", "🇪🇸"),
    Language("fr-FR", "French", "🇫🇷"),
    Language("de-DE", "German", "🇩🇪"),
    Language("ja-JP", "Japanese", "🇯🇵"),
    Language("ko-KR", "Korean", "🇰🇷"),
    Language("zh-CN", "Chinese", "🇨🇳"),
    Language("ru-RU", "Russian", "🇷🇺"),
    Language("it-IT", "Italian", "🇮🇹"),
    Language("pt-BR", "Portuguese", "🇧🇷"),
    Language("hi-IN", "Hindi", "🇮🇳"),
)

DEFAULT_CODE = "es-ES"

TOPICS: tuple[str, ...] = (
    "General conversation",
    "Ordering food at a restaurant",
    "Discussing a movie",
    "Talking about family",
    "Planning a trip",
    "Hobbies and interests",
)

GRAMMAR_FOCUS: tuple[str, ...] = (
    "None",
    "Past Tense",
    "Future Tense",
    "Conditional Sentences",
    "Subjunctive Mood",
    "Formal vs. Informal",
)


def find_language(name: str) -> Language | None:
    """Case-insensitive lookup by display name."""
    lowered = name.strip().lower()
    for lang in LANGUAGES:
        if lang.name.lower() == lowered:
            return lang
    return None


def code_for(name: str) -> str:
    """BCP-47 code for a language name; unknown names map to Spanish."""
    lang = find_language(name)
    return lang.code if lang else DEFAULT_CODE
