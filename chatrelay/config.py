"""Configuration management for the chat relay.

Loads settings from a YAML config file with Pydantic validation.
Config file location: ~/.chatrelay/config.yaml
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from chatrelay.core.errors import StartupError


# === Default paths ===

def get_relay_home() -> Path:
    """Get the relay data directory (~/.chatrelay)."""
    return Path(os.environ.get("CHATRELAY_HOME", Path.home() / ".chatrelay"))


# === Configuration Models ===


class PhotoQuality(str, Enum):
    """Which of the platform's photo sizes to download."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PersonalityConfig(BaseModel):
    """Who the bot is."""

    name: str = "Nova"
    prompt: str = (
        "You are Nova, a friendly assistant in a Telegram chat. "
        "Several people may talk to you at once; their messages are "
        "prefixed with their name. Answer concisely."
    )
    respond_to_name: bool = False  # Answer group messages that mention the name


class OpenAIConfig(BaseModel):
    """Completion provider connection and conversation budgets."""

    api_key_env: str | None = "OPENAI_API_KEY"  # Environment variable name for API key
    api_key: str | None = None  # Direct API key (not recommended)
    base_url: str | None = None  # Custom base URL for OpenAI-compatible servers
    model: str = "gpt-4o-mini"
    minutes_to_keep: int = Field(default=60, gt=0)
    tokens_to_keep: int = Field(default=4000, gt=0)
    vision_support: bool = False
    timeout: float = Field(default=60.0, gt=0)  # seconds, per attempt
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=10.0, ge=0)
    cost_strategy: Literal["usage", "estimate"] = "usage"

    def get_api_key(self) -> str | None:
        """Resolve API key from env var or direct value."""
        if self.api_key_env and os.environ.get(self.api_key_env):
            return os.environ.get(self.api_key_env)
        return self.api_key


class TelegramConfig(BaseModel):
    """Telegram connection and chat policy."""

    bot_token_env: str = "CHATRELAY_TELEGRAM_TOKEN"
    bot_token: str | None = None
    username: str = "@NovaBot"  # Must match the bot's real handle
    allowed_chats: list[int] = Field(default_factory=list)  # Empty = allow all
    message_length_limit: int = Field(default=500, gt=0)
    allow_private_messages: bool = True
    photo_quality: PhotoQuality = PhotoQuality.MEDIUM

    @field_validator("username")
    @classmethod
    def _handle_has_at(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("@"):
            value = f"@{value}"
        return value

    def get_bot_token(self) -> str | None:
        """Resolve bot token from environment variable or direct value."""
        return os.environ.get(self.bot_token_env) or self.bot_token


class ConnectionsConfig(BaseModel):
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


class RelayConfig(BaseModel):
    """Root configuration for the relay."""

    personality: PersonalityConfig = Field(default_factory=PersonalityConfig)
    connections: ConnectionsConfig = Field(default_factory=ConnectionsConfig)


# === Config Loading ===


def load_config(config_path: Path | None = None) -> RelayConfig:
    """Load configuration from YAML file.

    Falls back to defaults if the config file doesn't exist. Invalid files
    raise StartupError, since nothing can run on a broken config.
    """
    if config_path is None:
        config_path = get_relay_home() / "config.yaml"

    if not config_path.exists():
        return RelayConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return RelayConfig(**raw)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise StartupError(f"Invalid config file {config_path}: {e}") from e


def save_default_config(config_path: Path | None = None) -> Path:
    """Save the default configuration to a YAML file.

    Creates parent directories if needed. Returns the path.
    """
    if config_path is None:
        config_path = get_relay_home() / "config.yaml"

    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = RelayConfig().model_dump(mode="json")

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    return config_path
