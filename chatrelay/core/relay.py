"""Relay: the per-message pipeline from inbound text to committed answer.

The relay owns the conversation window. Every read or write of the window
(eviction, composing, ingesting) happens while holding the window lock, so
concurrently handled messages cannot interleave their changes.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chatrelay.config import RelayConfig
from chatrelay.core.addressing import should_respond
from chatrelay.core.composer import TOO_LONG_REPLY, RequestComposer
from chatrelay.core.costs import CostStrategy, get_cost_strategy
from chatrelay.core.errors import MessageTooLongError, ProviderError, StartupError
from chatrelay.core.ingester import ingest
from chatrelay.core.model_router import ModelRouter
from chatrelay.core.status import build_status
from chatrelay.core.types import (
    InboundMessage,
    OutcomeKind,
    RelayOutcome,
    Role,
    TextContent,
    Turn,
    utcnow,
)
from chatrelay.core.window import EvictionPolicy, Window

if TYPE_CHECKING:
    from chatrelay.adapters.base import BaseAdapter

logger = structlog.get_logger()

STATUS_COMMAND = "/status"


async def prime_window(router: ModelRouter, config: RelayConfig, costs: CostStrategy) -> Window:
    """Create the window, costing the system prompt with one completion call."""
    prompt = config.personality.prompt
    try:
        response = await router.complete(
            [{"role": Role.SYSTEM.value, "content": prompt}],
            max_tokens=config.connections.openai.tokens_to_keep,
        )
    except ProviderError as e:
        raise StartupError(f"Priming call to {router.model} failed: {e}") from e

    tokens = costs.system_cost(prompt, response)
    logger.info("window_primed", model=router.model, system_tokens=tokens)
    return Window(Turn(role=Role.SYSTEM, content=TextContent(prompt), tokens=tokens))


class ConversationWindow:
    """Single owner of the shared window and its lock."""

    def __init__(self, window: Window, policy: EvictionPolicy) -> None:
        self.window = window
        self.policy = policy
        self.lock = asyncio.Lock()


class Relay:
    """Decides, composes, calls the model and commits, one message at a time."""

    def __init__(
        self,
        config: RelayConfig,
        router: ModelRouter,
        window: Window,
        costs: CostStrategy | None = None,
    ) -> None:
        self.config = config
        self.router = router
        self.costs = costs or get_cost_strategy(config.connections.openai.cost_strategy)
        self.composer = RequestComposer(config)
        openai = config.connections.openai
        self.conversation = ConversationWindow(
            window, EvictionPolicy(openai.minutes_to_keep, openai.tokens_to_keep)
        )
        self.bot_user_id: int | None = None  # Set once the platform identity is known

    @property
    def window(self) -> Window:
        return self.conversation.window

    def is_chat_allowed(self, message: InboundMessage) -> bool:
        telegram = self.config.connections.telegram
        if telegram.allowed_chats and message.chat_id not in telegram.allowed_chats:
            return False
        if message.chat_is_private and not telegram.allow_private_messages:
            return False
        return True

    async def handle(self, message: InboundMessage, transport: BaseAdapter) -> RelayOutcome:
        """Run one inbound message through the pipeline and send the reply."""
        if not self.is_chat_allowed(message):
            logger.debug("chat_not_allowed", chat_id=message.chat_id)
            return RelayOutcome(OutcomeKind.IGNORED)

        if message.image_ref and not self.config.connections.openai.vision_support:
            return RelayOutcome(OutcomeKind.IGNORED)
        if message.text is None and message.image_ref is None:
            return RelayOutcome(OutcomeKind.IGNORED)

        decision = should_respond(
            message.prompt,
            chat_is_private=message.chat_is_private,
            reply_to_author_id=message.reply_to_author_id,
            bot_handle=self.config.connections.telegram.username,
            bot_user_id=self.bot_user_id,
            respond_to_name=self.config.personality.respond_to_name,
            personality_name=self.config.personality.name,
        )
        if not decision.respond:
            logger.debug("message_ignored", chat_id=message.chat_id, message_id=message.message_id)
            return RelayOutcome(OutcomeKind.IGNORED)

        prompt = decision.prompt
        try:
            self.composer.check_length(prompt)
        except MessageTooLongError as e:
            logger.info("message_rejected", chat_id=message.chat_id, length=e.length, limit=e.limit)
            await transport.send_text(message.chat_id, TOO_LONG_REPLY, message.message_id)
            return RelayOutcome(OutcomeKind.REJECTED, reply=TOO_LONG_REPLY, error=e)

        logger.info(
            "message_accepted",
            chat_id=message.chat_id,
            author=message.author_display_name,
            edited=message.is_edited,
            image=bool(message.image_ref),
            text=prompt,
        )
        await transport.send_typing(message.chat_id)

        if prompt.startswith(STATUS_COMMAND):
            return await self._send_status(message, transport)

        image = None
        if message.image_ref:
            try:
                image = await self._fetch_image(message.image_ref, transport)
            except ProviderError as e:
                logger.error("image_fetch_failed", chat_id=message.chat_id, error=str(e))
                return RelayOutcome(OutcomeKind.FAILED, error=e)

        try:
            answer = await self._exchange(prompt, message.author_display_name, image)
        except MessageTooLongError as e:
            await transport.send_text(message.chat_id, TOO_LONG_REPLY, message.message_id)
            return RelayOutcome(OutcomeKind.REJECTED, reply=TOO_LONG_REPLY, error=e)
        except ProviderError as e:
            logger.error("completion_failed", chat_id=message.chat_id, error=str(e))
            return RelayOutcome(OutcomeKind.FAILED, error=e)

        logger.info("message_answered", chat_id=message.chat_id, name=self.config.personality.name, text=answer)
        await transport.send_text(message.chat_id, answer, message.message_id)
        return RelayOutcome(OutcomeKind.ANSWERED, reply=answer)

    async def _send_status(self, message: InboundMessage, transport: BaseAdapter) -> RelayOutcome:
        conversation = self.conversation
        async with conversation.lock:
            now = utcnow()
            conversation.policy.evict(conversation.window, now)
            text = build_status(conversation.window, self.config, now)
        await transport.send_text(message.chat_id, text, message.message_id, html=True)
        return RelayOutcome(OutcomeKind.STATUS, reply=text)

    async def _fetch_image(self, image_ref: str, transport: BaseAdapter) -> bytes:
        try:
            return await asyncio.wait_for(
                transport.fetch_image(image_ref),
                timeout=self.config.connections.openai.timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ProviderError(f"Could not download image {image_ref}: {e}") from e

    async def _exchange(self, prompt: str, author: str, image: bytes | None) -> str:
        """Evict, compose, call the model and ingest, holding the window lock.

        Nothing is committed unless the model call succeeds.
        """
        conversation = self.conversation
        async with conversation.lock:
            conversation.policy.evict(conversation.window)
            request = self.composer.compose(conversation.window, prompt, author, image=image)
            response = await self.router.complete(
                request.messages,
                max_tokens=self.config.connections.openai.tokens_to_keep,
                user=author or None,
            )
            return ingest(
                conversation.window,
                request,
                response,
                self.costs,
                self.config.personality.name,
            )
