"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserConfig(Base):
    """The local identity used by the CLI session."""

    id: str = "local"
    display_name: str = "You"
    target_lang: str = "Spanish"


class AIConfig(Base):
    """AI text service settings.

    ``mode="proxy"`` talks to a running ``polychat proxy`` endpoint;
    ``mode="direct"`` calls the model in-process through a provider.
    """

    mode: Literal["proxy", "direct"] = "proxy"
    proxy_url: str = "http://127.0.0.1:18800/"
    timeout_s: float = 30.0
    model: str = "gemini/gemini-2.5-flash"
    provider: str | None = None
    api_key: str = ""
    api_base: str | None = None
    extra_headers: dict[str, str] | None = None


class ProxyConfig(Base):
    """AI proxy HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 18800


class PresenceConfig(Base):
    """Presence window and heartbeat cadence."""

    window_s: int = 300
    heartbeat_interval_s: int = 60


class HistoryConfig(Base):
    """History window paging."""

    page_size: int = Field(default=20, ge=1)


class Config(Base):
    """Root configuration for polychat."""

    app_id: str = "poly-local-dev"
    user: UserConfig = Field(default_factory=UserConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
