"""
Providers the tutor can run on, selected with ``ai.provider`` in config or
inferred from the model name and credentials.

Gemini is the default model family. OpenRouter is the only gateway, vLLM the
only local server, and ``custom`` talks to any OpenAI-compatible endpoint
without LiteLLM.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderSpec:
    """How one provider is detected and how its models are named for LiteLLM."""

    name: str
    display_name: str
    env_key: str = ""                  # LiteLLM reads the key from here
    keywords: tuple[str, ...] = ()     # lowercase fragments of model names
    litellm_prefix: str = ""           # "gemini" turns "gemini-2.5-flash" into "gemini/gemini-2.5-flash"
    key_prefix: str = ""               # api_key shape that identifies a gateway
    base_keyword: str = ""             # api_base substring that identifies a gateway
    is_gateway: bool = False
    is_local: bool = False
    is_direct: bool = False

    @property
    def label(self) -> str:
        return self.display_name

    def prefixed(self, model: str) -> str:
        """Model name as LiteLLM expects it, prefixed at most once."""
        if not self.litellm_prefix or model.startswith(f"{self.litellm_prefix}/"):
            return model
        return f"{self.litellm_prefix}/{model}"


CUSTOM = ProviderSpec(name="custom", display_name="Custom", is_direct=True)

OPENROUTER = ProviderSpec(
    name="openrouter",
    display_name="OpenRouter",
    env_key="OPENROUTER_API_KEY",
    litellm_prefix="openrouter",
    key_prefix="sk-or-",
    base_keyword="openrouter",
    is_gateway=True,
)

GEMINI = ProviderSpec(
    name="gemini",
    display_name="Gemini",
    env_key="GEMINI_API_KEY",
    keywords=("gemini",),
    litellm_prefix="gemini",
)

# LiteLLM routes "gpt-*" without a prefix.
OPENAI = ProviderSpec(
    name="openai",
    display_name="OpenAI",
    env_key="OPENAI_API_KEY",
    keywords=("gpt", "openai"),
)

VLLM = ProviderSpec(
    name="vllm",
    display_name="vLLM/Local",
    env_key="HOSTED_VLLM_API_KEY",
    litellm_prefix="hosted_vllm",
    is_local=True,
)

PROVIDERS: tuple[ProviderSpec, ...] = (CUSTOM, OPENROUTER, GEMINI, OPENAI, VLLM)


def find_by_name(name: str) -> ProviderSpec | None:
    """Provider spec for an ``ai.provider`` config value, e.g. "gemini"."""
    return next((spec for spec in PROVIDERS if spec.name == name), None)


def find_by_model(model: str) -> ProviderSpec | None:
    """Infer a hosted provider from the model name ("gemini/..." or "gpt-4o")."""
    lowered = model.lower()
    hosted = [s for s in PROVIDERS if s.keywords]

    prefix, sep, _ = lowered.partition("/")
    if sep:
        for spec in hosted:
            if spec.name == prefix:
                return spec
    for spec in hosted:
        if any(kw in lowered for kw in spec.keywords):
            return spec
    return None


def find_gateway(
    provider_name: str | None = None,
    api_key: str | None = None,
    api_base: str | None = None,
) -> ProviderSpec | None:
    """Gateway or local server in use, if any.

    An explicit ``provider_name`` wins; otherwise the key prefix or the
    api_base URL decide.
    """
    if provider_name:
        spec = find_by_name(provider_name)
        if spec and (spec.is_gateway or spec.is_local):
            return spec

    for spec in PROVIDERS:
        if spec.key_prefix and api_key and api_key.startswith(spec.key_prefix):
            return spec
        if spec.base_keyword and api_base and spec.base_keyword in api_base:
            return spec
    return None
