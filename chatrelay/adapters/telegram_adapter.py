"""Telegram adapter using python-telegram-bot v21+.

Features:
- Async long polling (no webhook needed)
- Updates handled concurrently; the relay serializes window access
- Text and, with vision enabled, photo messages (caption as prompt)
- Edited messages handled as new ones
- Startup check that the configured handle matches the bot account
"""

from __future__ import annotations

import structlog
from telegram import LinkPreviewOptions, ReplyParameters, Update
from telegram.constants import ChatAction, ChatType, MessageLimit, ParseMode
from telegram.ext import Application, MessageHandler, filters

from chatrelay.adapters.base import BaseAdapter
from chatrelay.config import PhotoQuality, RelayConfig
from chatrelay.core.errors import StartupError
from chatrelay.core.relay import Relay
from chatrelay.core.types import InboundMessage

logger = structlog.get_logger()


class TelegramAdapter(BaseAdapter):
    """Telegram bot adapter. All chats share the relay's single window."""

    name = "telegram"

    def __init__(self, relay: Relay, config: RelayConfig) -> None:
        super().__init__(relay, config)
        self._app: Application | None = None

    async def start(self) -> None:
        """Connect, verify the bot identity and start polling.

        Raises StartupError when the token is missing or the configured
        handle does not belong to this bot.
        """
        telegram = self.config.connections.telegram
        token = telegram.get_bot_token()
        if not token:
            raise StartupError(
                f"Telegram bot token not found. Set the {telegram.bot_token_env} environment variable."
            )

        self._app = Application.builder().token(token).concurrent_updates(True).build()
        self._app.add_handler(MessageHandler(filters.TEXT | filters.PHOTO, self._on_message))

        logger.info("telegram_starting", bot_token="***" + token[-4:])
        await self._app.initialize()

        me = await self._app.bot.get_me()
        if telegram.username.lower() != f"@{me.username}".lower():
            await self._app.shutdown()
            raise StartupError(
                f"Connected to Telegram as @{me.username} with ID {me.id}, "
                f"but configured name is {telegram.username}"
            )
        self.relay.bot_user_id = me.id

        await self._app.start()
        await self._app.updater.start_polling(
            allowed_updates=[Update.MESSAGE, Update.EDITED_MESSAGE]
        )
        logger.info("telegram_started", bot_username=me.username, bot_id=me.id)

    async def stop(self) -> None:
        """Stop the Telegram bot, cancelling messages still in flight.

        Polling stops first so no new updates arrive; anything queued after
        that is dropped by dispatch() instead of reaching the model.
        """
        if self._app:
            try:
                if self._app.updater and self._app.updater.running:
                    await self._app.updater.stop()
                await self.cancel_pending()
                if self._app.running:
                    await self._app.stop()
                await self._app.shutdown()
            except Exception as e:
                logger.warning("telegram_stop_error", error=str(e))
            logger.info("telegram_stopped")

    async def _on_message(self, update: Update, context) -> None:
        message = to_inbound(update, self.config.connections.telegram.photo_quality)
        if message is None:
            return
        await self.dispatch(message)

    async def send_text(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        html: bool = False,
    ) -> int:
        bot = self._app.bot
        message_id = 0
        for chunk in split_message(text):
            sent = await bot.send_message(
                chat_id=chat_id,
                text=chunk,
                parse_mode=ParseMode.HTML if html else None,
                link_preview_options=LinkPreviewOptions(is_disabled=True) if html else None,
                reply_parameters=(
                    ReplyParameters(message_id=reply_to_message_id, allow_sending_without_reply=True)
                    if reply_to_message_id
                    else None
                ),
            )
            message_id = sent.message_id
        return message_id

    async def send_typing(self, chat_id: int) -> None:
        await self._app.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)

    async def fetch_image(self, image_ref: str) -> bytes:
        file = await self._app.bot.get_file(image_ref)
        data = await file.download_as_bytearray()
        return bytes(data)


def pick_photo(photos, quality: PhotoQuality):
    """Choose a photo size; Telegram lists sizes from smallest to largest."""
    if not photos:
        return None
    if quality == PhotoQuality.LOW:
        return photos[0]
    if quality == PhotoQuality.MEDIUM:
        return photos[len(photos) // 2]
    return photos[-1]


def to_inbound(update: Update, quality: PhotoQuality) -> InboundMessage | None:
    """Convert a Telegram update into an InboundMessage (None if unusable)."""
    msg = update.effective_message
    chat = update.effective_chat
    if msg is None or chat is None:
        return None

    user = msg.from_user
    if user is not None and user.is_bot:
        return None

    photo = pick_photo(msg.photo, quality)
    reply = msg.reply_to_message
    reply_author = reply.from_user.id if reply is not None and reply.from_user is not None else None

    return InboundMessage(
        chat_id=chat.id,
        message_id=msg.message_id,
        author_id=user.id if user else None,
        author_display_name=(user.first_name if user else chat.title) or "",
        chat_is_private=chat.type == ChatType.PRIVATE,
        text=msg.text,
        caption=msg.caption,
        image_ref=photo.file_id if photo is not None else None,
        reply_to_author_id=reply_author,
        is_edited=update.edited_message is not None,
    )


def split_message(text: str, max_len: int = MessageLimit.MAX_TEXT_LENGTH) -> list[str]:
    """Split text into chunks Telegram accepts, preferring line then word breaks."""
    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_len:
        split_at = remaining.rfind("\n", 0, max_len)
        if split_at <= 0:
            split_at = remaining.rfind(" ", 0, max_len)
        if split_at <= 0:
            split_at = max_len
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip("\n ")
    chunks.append(remaining)
    return chunks
