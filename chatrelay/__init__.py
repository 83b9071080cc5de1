"""chatrelay - a Telegram bot that relays conversations to a completion provider."""

__version__ = "0.1.0"
