"""Addressing: decide whether an incoming message is meant for the bot."""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class AddressingDecision:
    respond: bool
    prompt: str


def should_respond(
    text: str,
    chat_is_private: bool,
    reply_to_author_id: int | None,
    bot_handle: str,
    bot_user_id: int | None,
    respond_to_name: bool,
    personality_name: str,
) -> AddressingDecision:
    """Resolve whether to answer, and the prompt to answer.

    Checked in order, first match wins:
    1. Text starts with the bot handle: answer, with the handle removed.
    2. Reply to one of the bot's own messages.
    3. Private chat.
    4. Name matching is on and the text mentions the personality name.
    Anything else is ignored.
    """
    if bot_handle and text.lower().startswith(bot_handle.lower()):
        stripped = re.sub(re.escape(bot_handle), "", text, flags=re.IGNORECASE)
        return AddressingDecision(True, stripped.strip())

    if bot_user_id is not None and reply_to_author_id == bot_user_id:
        return AddressingDecision(True, text)

    if chat_is_private:
        return AddressingDecision(True, text)

    if respond_to_name and personality_name and personality_name.lower() in text.lower():
        return AddressingDecision(True, text)

    return AddressingDecision(False, text)
