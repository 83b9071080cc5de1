"""Request composer: turn the window plus a new message into a completion request."""

from __future__ import annotations

import base64
from typing import Any

from chatrelay.config import PhotoQuality, RelayConfig
from chatrelay.core.errors import MessageTooLongError
from chatrelay.core.types import (
    CompletionRequest,
    Content,
    ImageContent,
    ImageDetail,
    Role,
    TextContent,
    Turn,
)
from chatrelay.core.window import Window

TOO_LONG_REPLY = "Sorry but this message is too long for me to parse."


def speaker_prefix(name: str) -> str:
    return f"{name} says: "


def image_detail_for(quality: PhotoQuality) -> ImageDetail:
    """Map the three-level photo quality onto the provider's two detail levels."""
    if quality == PhotoQuality.LOW:
        return ImageDetail.LOW
    return ImageDetail.HIGH


def image_data_uri(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def render_turn(turn: Turn) -> dict[str, Any]:
    """Render a turn in the OpenAI chat message format."""
    content = turn.content
    if isinstance(content, ImageContent):
        return {
            "role": turn.role.value,
            "content": [
                {"type": "text", "text": content.caption},
                {
                    "type": "image_url",
                    "image_url": {
                        "url": image_data_uri(content.data),
                        "detail": content.detail.value,
                    },
                },
            ],
        }
    return {"role": turn.role.value, "content": content.text}


class RequestComposer:
    """Builds completion requests and enforces the input length limit."""

    def __init__(self, config: RelayConfig) -> None:
        self.limit = config.connections.telegram.message_length_limit
        self.photo_quality = config.connections.telegram.photo_quality

    def check_length(self, text: str) -> None:
        if len(text) > self.limit:
            raise MessageTooLongError(len(text), self.limit)

    def text_content(self, text: str, author: str) -> TextContent:
        if author:
            text = speaker_prefix(author) + text
        return TextContent(text)

    def image_content(self, data: bytes, caption: str, author: str) -> ImageContent:
        if author:
            caption = speaker_prefix(author) + caption
        return ImageContent(data=data, detail=image_detail_for(self.photo_quality), caption=caption)

    def compose(
        self,
        window: Window,
        text: str,
        author_display_name: str,
        image: bytes | None = None,
    ) -> CompletionRequest:
        """Build the request for a new message without touching the window.

        Raises MessageTooLongError before anything else if ``text`` is over
        the limit.
        """
        self.check_length(text)

        content: Content
        if image is not None:
            content = self.image_content(image, text, author_display_name)
        else:
            content = self.text_content(text, author_display_name)

        messages = [render_turn(t) for t in window.turns]
        messages.append(render_turn(Turn(role=Role.USER, content=content)))

        return CompletionRequest(
            messages=messages,
            content=content,
            user=author_display_name,
            context_tokens=window.total_tokens,
        )
