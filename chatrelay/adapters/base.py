"""Base adapter interface for messaging platforms.

An adapter receives platform updates, converts them to InboundMessage and
hands them to the relay. The relay talks back through the adapter's
send_text / send_typing / fetch_image methods.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

import structlog

from chatrelay.config import RelayConfig
from chatrelay.core.relay import Relay
from chatrelay.core.types import InboundMessage, OutcomeKind, RelayOutcome

logger = structlog.get_logger()


class BaseAdapter(ABC):
    """Abstract base class for messaging platform adapters.

    Subclasses must implement:
    - start(): connect, verify identity, begin receiving messages
    - stop(): gracefully shut down
    - send_text(), send_typing(), fetch_image(): outbound operations
    """

    name: str = "base"

    def __init__(self, relay: Relay, config: RelayConfig) -> None:
        self.relay = relay
        self.config = config
        self._pending: set[asyncio.Task[RelayOutcome]] = set()
        self._closing = False

    @abstractmethod
    async def start(self) -> None:
        """Start the adapter (connect, begin polling/listening)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully stop the adapter."""
        ...

    @abstractmethod
    async def send_text(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        html: bool = False,
    ) -> int:
        """Send a message, returning the id of the (last) sent message."""
        ...

    @abstractmethod
    async def send_typing(self, chat_id: int) -> None:
        ...

    @abstractmethod
    async def fetch_image(self, image_ref: str) -> bytes:
        """Download an image referenced by an inbound message."""
        ...

    async def dispatch(self, message: InboundMessage) -> RelayOutcome:
        """Hand a message to the relay, keeping failures local to it.

        Each message runs in its own task so cancel_pending() can abort it
        mid-flight. Once the adapter is closing, new messages are dropped.
        """
        if self._closing:
            logger.debug("message_dropped_closing", adapter=self.name, chat_id=message.chat_id)
            return RelayOutcome(OutcomeKind.IGNORED)

        task = asyncio.create_task(self.relay.handle(message, self))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            return await task
        except asyncio.CancelledError as e:
            if not (self._closing and task.cancelled()):
                raise
            logger.info(
                "message_cancelled",
                adapter=self.name,
                chat_id=message.chat_id,
                message_id=message.message_id,
            )
            return RelayOutcome(OutcomeKind.FAILED, error=e)
        except Exception as e:
            logger.exception(
                "message_handling_error",
                adapter=self.name,
                chat_id=message.chat_id,
                message_id=message.message_id,
                error=str(e),
            )
            return RelayOutcome(OutcomeKind.FAILED, error=e)

    async def cancel_pending(self) -> int:
        """Stop accepting messages and cancel those still being handled.

        Returns the number of cancelled messages. Window changes are never
        left half-applied: eviction and ingestion do not await.
        """
        self._closing = True
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("pending_messages_cancelled", adapter=self.name, count=len(tasks))
        return len(tasks)

    @property
    def pending_count(self) -> int:
        return len(self._pending)
