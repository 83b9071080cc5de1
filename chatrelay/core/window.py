"""Conversation window: the bounded buffer of turns sent to the model.

The first turn is always the system prompt and is never evicted. Everything
after it is evicted oldest-first, first by age and then by token budget.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from chatrelay.core.types import Role, Turn, utcnow

logger = structlog.get_logger()


class Window:
    """Ordered list of turns with a pinned system turn at index 0."""

    def __init__(self, system_turn: Turn) -> None:
        if system_turn.role != Role.SYSTEM:
            raise ValueError("The first turn of a window must be a system turn")
        self._turns: list[Turn] = [system_turn]

    @property
    def turns(self) -> list[Turn]:
        """Snapshot of all turns, system first."""
        return list(self._turns)

    @property
    def system(self) -> Turn:
        return self._turns[0]

    @property
    def history(self) -> list[Turn]:
        """All non-system turns, oldest first."""
        return self._turns[1:]

    @property
    def total_tokens(self) -> int:
        return sum(t.tokens for t in self._turns)

    @property
    def history_tokens(self) -> int:
        return sum(t.tokens for t in self._turns[1:])

    def append(self, turn: Turn) -> None:
        if turn.role == Role.SYSTEM:
            raise ValueError("A window holds exactly one system turn")
        self._turns.append(turn)

    def pop_oldest(self) -> Turn:
        """Remove and return the oldest non-system turn."""
        if len(self._turns) < 2:
            raise IndexError("No history to evict")
        return self._turns.pop(1)

    def __len__(self) -> int:
        return len(self._turns)


class EvictionPolicy:
    """Keeps a window within its time and token budgets."""

    def __init__(self, minutes_to_keep: int, tokens_to_keep: int) -> None:
        self.max_age = timedelta(minutes=minutes_to_keep)
        self.tokens_to_keep = tokens_to_keep

    def evict(self, window: Window, now: datetime | None = None) -> int:
        """Drop the oldest history turns until both budgets hold.

        The most recent non-system turn always survives so the model never
        receives an empty context. Returns the number of turns removed.
        """
        now = now or utcnow()
        cutoff = now - self.max_age
        removed = 0

        while len(window.history) > 1 and window.history[0].timestamp < cutoff:
            window.pop_oldest()
            removed += 1

        while len(window.history) > 1 and window.total_tokens > self.tokens_to_keep:
            window.pop_oldest()
            removed += 1

        if removed:
            logger.debug(
                "window_evicted",
                removed=removed,
                remaining=len(window.history),
                tokens=window.total_tokens,
            )
        return removed
