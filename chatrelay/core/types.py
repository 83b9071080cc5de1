"""Shared data types for the relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ImageDetail(str, Enum):
    """Detail hint passed to the vision model."""

    LOW = "low"
    HIGH = "high"


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class ImageContent:
    """An image with its caption, kept as raw bytes until rendered."""

    data: bytes
    detail: ImageDetail
    caption: str = ""


Content = Union[TextContent, ImageContent]


@dataclass(frozen=True)
class Turn:
    """A single message in the conversation window."""

    role: Role
    content: Content
    tokens: int = 0
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def text(self) -> str:
        """Plain text of the turn (the caption for images)."""
        if isinstance(self.content, ImageContent):
            return self.content.caption
        return self.content.text


@dataclass
class InboundMessage:
    """A platform-neutral view of an incoming chat message."""

    chat_id: int
    message_id: int
    author_id: int | None = None
    author_display_name: str = ""
    chat_is_private: bool = False
    text: str | None = None
    caption: str | None = None
    image_ref: str | None = None  # Platform file id, resolved by the adapter
    reply_to_author_id: int | None = None
    is_edited: bool = False

    @property
    def prompt(self) -> str:
        """Text the user wrote: the message text, or the caption of a photo."""
        return self.text or self.caption or ""


@dataclass
class ModelResponse:
    """Response from a completion call."""

    content: str | None = None
    model: str = ""
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    finish_reason: str = ""

    @property
    def has_usage(self) -> bool:
        return self.prompt_tokens is not None and self.completion_tokens is not None


@dataclass
class CompletionRequest:
    """Everything needed to call the provider and commit the result afterwards."""

    messages: list[dict[str, Any]]
    content: Content  # The new user turn's content, as it will be stored
    user: str = ""
    context_tokens: int = 0  # Window token total when the request was built
    created_at: datetime = field(default_factory=utcnow)


class OutcomeKind(str, Enum):
    IGNORED = "ignored"
    REJECTED = "rejected"
    STATUS = "status"
    ANSWERED = "answered"
    FAILED = "failed"


@dataclass
class RelayOutcome:
    """Result of handling one inbound message."""

    kind: OutcomeKind
    reply: str | None = None
    error: Exception | None = None
