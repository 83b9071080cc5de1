"""Status card for the /status command."""

from __future__ import annotations

import html
from datetime import datetime, timedelta

from chatrelay import __version__
from chatrelay.config import RelayConfig
from chatrelay.core.types import utcnow
from chatrelay.core.window import Window


def _split_duration(delta: timedelta) -> tuple[int, int, int]:
    """Return (days, hours, minutes) of a non-negative duration."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    return days, hours, minutes


def build_status(window: Window, config: RelayConfig, now: datetime | None = None) -> str:
    """Render the status card as Telegram HTML. Does not touch the window."""
    now = now or utcnow()
    openai = config.connections.openai
    name = html.escape(config.personality.name)

    uptime = now - window.system.timestamp
    history = window.history
    tokens_in_memory = window.history_tokens
    oldest_age = now - history[0].timestamp if history else timedelta(0)

    lines = [
        f"ℹ️ This is <b>{name}</b>, using "
        f"<b>chatrelay</b> {__version__} "
        f"and the <code>{html.escape(openai.model)}</code>-model.",
        "",
        f"⚙️ I am configured to keep <b>~{openai.tokens_to_keep} tokens</b> "
        f"or <b>~{openai.minutes_to_keep} minutes</b> of conversation history.",
        "",
    ]
    if history:
        lines.append(
            f"\U0001f4ad I'm currently keeping <b>~{tokens_in_memory} tokens</b> "
            f"and <b>{len(history)} messages</b> in memory."
        )
        lines.append(
            f"⏳ My oldest message is from <b>{int(oldest_age.total_seconds() // 60)}</b> minutes ago."
        )
    else:
        lines.append("\U0001f4ad I don't currently have any messages in memory.")

    days, hours, minutes = _split_duration(uptime)
    lines += [
        "",
        f"\U0001f506 I was last restarted <b>{days} days, {hours} hours and {minutes} minutes</b> ago.",
    ]
    return "\n".join(lines)
