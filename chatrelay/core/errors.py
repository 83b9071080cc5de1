"""Error types raised by the relay.

Each per-message stage fails with its own exception so callers can tell a
rejected input from a provider failure without inspecting messages.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all relay errors."""


class StartupError(RelayError):
    """Fatal problem detected before any message is received."""


class MessageTooLongError(RelayError):
    """Input text exceeds the configured length limit."""

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(f"Message of {length} characters exceeds limit of {limit}")
        self.length = length
        self.limit = limit


class ProviderError(RelayError):
    """Completion or image download failed (after retries, if any)."""
